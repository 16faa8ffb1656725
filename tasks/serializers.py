# tasks/serializers.py
from django.contrib.auth import get_user_model
from rest_framework import serializers

from . import services
from .models import Task

User = get_user_model()


class TaskSerializer(serializers.ModelSerializer):
    # plain id so an unknown team and a foreign team look the same to the caller
    team = serializers.IntegerField(source='team_id')
    team_name = serializers.CharField(source='team.name', read_only=True)
    assigned_to = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.all(),
        allow_null=True,
        required=False
    )
    created_by_name = serializers.SerializerMethodField()
    assigned_to_name = serializers.SerializerMethodField()

    class Meta:
        model = Task
        fields = [
            'id', 'title', 'description', 'status', 'priority', 'due_date',
            'team', 'team_name', 'created_by', 'created_by_name',
            'assigned_to', 'assigned_to_name', 'created_at', 'updated_at'
        ]
        read_only_fields = ['created_by', 'created_at', 'updated_at']

    def get_created_by_name(self, obj):
        return obj.created_by.full_name

    def get_assigned_to_name(self, obj):
        return obj.assigned_to.full_name if obj.assigned_to else None

    def create(self, validated_data):
        request = self.context['request']
        team_id = validated_data.pop('team_id')
        return services.create_task(request.user, team_id, **validated_data)


class TaskUpdateSerializer(TaskSerializer):
    """Used with ``partial=True``: validated_data holds only the fields that were sent."""
    team = serializers.IntegerField(source='team_id', read_only=True)

    def update(self, instance, validated_data):
        request = self.context['request']
        return services.update_task(request.user, instance.pk, validated_data)
