# tasks/views.py
from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema
from rest_framework import generics, permissions, status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from .filters import TaskFilter
from .models import Task
from .serializers import TaskSerializer, TaskUpdateSerializer
from . import services

task_filter_parameters = [
    openapi.Parameter('status', openapi.IN_QUERY, type=openapi.TYPE_STRING,
                      enum=[value for value, _ in Task.STATUS_CHOICES]),
    openapi.Parameter('priority', openapi.IN_QUERY, type=openapi.TYPE_STRING,
                      enum=[value for value, _ in Task.PRIORITY_CHOICES]),
    openapi.Parameter('team', openapi.IN_QUERY, type=openapi.TYPE_INTEGER),
    openapi.Parameter('teamId', openapi.IN_QUERY, type=openapi.TYPE_INTEGER,
                      description="Alias of team"),
]


class TaskListCreateView(generics.ListCreateAPIView):
    serializer_class = TaskSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return Task.objects.none()

        filterset = TaskFilter(self.request.query_params, queryset=Task.objects.none())
        if not filterset.is_valid():
            raise ValidationError(filterset.errors)
        return services.list_tasks(self.request.user, filterset.service_filters())

    @swagger_auto_schema(manual_parameters=task_filter_parameters)
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


class TaskDetailView(generics.RetrieveUpdateDestroyAPIView):
    """
    PUT and PATCH both apply a partial update: fields left out of the body
    keep their value, fields sent as null are cleared.
    """
    permission_classes = [permissions.IsAuthenticated]

    def get_serializer_class(self):
        if self.request is not None and self.request.method in ('PUT', 'PATCH'):
            return TaskUpdateSerializer
        return TaskSerializer

    def get_object(self):
        return services.get_task(self.request.user, self.kwargs['pk'])

    def update(self, request, *args, **kwargs):
        kwargs['partial'] = True
        return super().update(request, *args, **kwargs)

    @swagger_auto_schema(
        responses={
            200: openapi.Response(description="Task deleted"),
            403: openapi.Response(description="Only the creator or a team admin can delete"),
            404: openapi.Response(description="Task not found"),
        }
    )
    def delete(self, request, *args, **kwargs):
        services.delete_task(request.user, self.kwargs['pk'])
        return Response(
            {"message": "Task deleted successfully"},
            status=status.HTTP_200_OK
        )
