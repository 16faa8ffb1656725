from django.db import connection
from django.utils.timezone import now
from rest_framework import permissions, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response


@api_view(['GET'])
@permission_classes([permissions.AllowAny])
def health_check(request):
    connection.ensure_connection()
    return Response(
        {"status": "ok", "timestamp": now().isoformat()},
        status=status.HTTP_200_OK,
    )
