# teams/views.py
from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema
from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from . import services
from .models import Team, TeamMembership
from .serializers import TeamMembershipSerializer, TeamSerializer


class TeamListCreateView(generics.ListCreateAPIView):
    """Teams the current user belongs to; creating one makes the caller its admin."""
    serializer_class = TeamSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return Team.objects.none()
        return services.list_teams(self.request.user)


class TeamDetailView(generics.RetrieveAPIView):
    serializer_class = TeamSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_object(self):
        return services.get_team(self.request.user, self.kwargs['pk'])


class TeamMembershipListView(generics.ListCreateAPIView):
    serializer_class = TeamMembershipSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return TeamMembership.objects.none()
        return services.list_members(self.request.user, self.kwargs['team_id'])

    def create(self, request, *args, **kwargs):
        # outsiders get a 404 before the body is validated
        services.get_team(request.user, self.kwargs['team_id'])
        return super().create(request, *args, **kwargs)


class TeamMembershipDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Remove a member from a team",
        operation_description=(
            "Admins may remove any member; any member may remove themself. "
            "The last admin of a team cannot be removed."
        ),
        responses={
            200: openapi.Response(description="Member removed"),
            403: openapi.Response(description="Only admins can remove other members"),
            404: openapi.Response(description="Team or member not found"),
            409: openapi.Response(description="Cannot remove the last admin"),
        }
    )
    def delete(self, request, team_id, user_id):
        services.remove_member(request.user, team_id, user_id)
        return Response(
            {"message": "Member removed successfully"},
            status=status.HTTP_200_OK
        )
