# teams/serializers.py
from rest_framework import serializers

from . import services
from .models import Team, TeamMembership


class TeamMembershipSerializer(serializers.ModelSerializer):
    # Write-only field for adding members by email
    email = serializers.EmailField(write_only=True)

    # Read-only user information fields
    user_id = serializers.IntegerField(source='user.id', read_only=True)
    user_email = serializers.EmailField(source='user.email', read_only=True)
    name = serializers.SerializerMethodField()

    class Meta:
        model = TeamMembership
        fields = ['id', 'user_id', 'email', 'user_email', 'name', 'team', 'role', 'joined_at']
        read_only_fields = ['team', 'joined_at']

    def get_name(self, obj):
        return obj.user.full_name

    def create(self, validated_data):
        request = self.context['request']
        team_id = self.context['view'].kwargs['team_id']
        return services.add_member(
            request.user,
            team_id,
            validated_data['email'],
            validated_data.get('role', TeamMembership.MEMBER),
        )


class TeamSerializer(serializers.ModelSerializer):
    created_by_name = serializers.SerializerMethodField()
    role = serializers.CharField(source='user_role', read_only=True)
    member_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Team
        fields = [
            'id', 'name', 'description', 'created_by', 'created_by_name',
            'role', 'member_count', 'created_at'
        ]
        read_only_fields = ['created_by', 'created_at']

    def get_created_by_name(self, obj):
        return obj.created_by.full_name

    def create(self, validated_data):
        request = self.context['request']
        team = services.create_team(
            request.user,
            validated_data['name'],
            validated_data.get('description'),
        )
        # re-read so the response carries the caller's role and member count
        return services.get_team(request.user, team.pk)
