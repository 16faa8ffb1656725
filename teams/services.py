# teams/services.py
import logging

from django.contrib.auth import get_user_model
from django.db import DEFAULT_DB_ALIAS, IntegrityError, transaction
from django.db.models import Count, OuterRef, Subquery
from rest_framework.exceptions import ValidationError

from tasktracker.exceptions import Conflict, Forbidden, NotFoundOrForbidden

from . import permissions
from .models import Team, TeamMembership

logger = logging.getLogger(__name__)

User = get_user_model()

ROLES = {role for role, _ in TeamMembership.ROLE_CHOICES}


def create_team(creator, name, description=None, using=DEFAULT_DB_ALIAS):
    """Create a team with ``creator`` as its founding admin."""
    name = (name or '').strip()
    if not name:
        raise ValidationError({'name': 'Team name is required.'}, code='required')

    with transaction.atomic(using=using):
        team = Team.objects.using(using).create(
            name=name,
            description=description or None,
            created_by=creator,
        )
        TeamMembership.objects.using(using).create(
            team=team,
            user=creator,
            role=TeamMembership.ADMIN,
        )

    logger.info(f"Team {team.id} created by user {creator.id}")
    return team


def list_teams(user, using=DEFAULT_DB_ALIAS):
    """Teams ``user`` belongs to, annotated with the user's role and the member count."""
    member_count = (
        TeamMembership.objects.filter(team=OuterRef('pk'))
        .values('team')
        .annotate(c=Count('id'))
        .values('c')
    )
    user_role = TeamMembership.objects.filter(team=OuterRef('pk'), user=user).values('role')
    return (
        Team.objects.using(using)
        .filter(teammembership__user=user)
        .annotate(
            user_role=Subquery(user_role[:1]),
            member_count=Subquery(member_count[:1]),
        )
        .select_related('created_by')
        .order_by('-created_at', '-id')
    )


def get_team(user, team_id, using=DEFAULT_DB_ALIAS):
    team = list_teams(user, using=using).filter(pk=team_id).first()
    if team is None:
        raise NotFoundOrForbidden('Team not found.')
    return team


def list_members(user, team_id, using=DEFAULT_DB_ALIAS):
    if not permissions.is_member(user.pk, team_id, using=using):
        raise NotFoundOrForbidden('Team not found.')
    return (
        TeamMembership.objects.using(using)
        .filter(team_id=team_id, team__teammembership__user=user)
        .select_related('user')
        .order_by('joined_at', 'id')
    )


def add_member(acting_user, team_id, email, role=TeamMembership.MEMBER, using=DEFAULT_DB_ALIAS):
    with transaction.atomic(using=using):
        # outsiders get a 404 before any input is checked
        if not permissions.is_member(acting_user.pk, team_id, using=using):
            raise NotFoundOrForbidden('Team not found.')
        if not permissions.can_manage_members(acting_user.pk, team_id, using=using):
            logger.warning(f"User {acting_user.id} denied adding members to team {team_id}")
            raise Forbidden('Only team admins can add members.', code='not_admin')

        email = (email or '').strip()
        if not email:
            raise ValidationError({'email': 'Email is required.'}, code='required')
        role = role or TeamMembership.MEMBER
        if role not in ROLES:
            raise ValidationError({'role': f'"{role}" is not a valid role.'}, code='invalid_choice')

        try:
            user = User.objects.using(using).get(email__iexact=email)
        except User.DoesNotExist:
            raise NotFoundOrForbidden('User not found.', code='user_not_found')

        if permissions.is_member(user.pk, team_id, using=using):
            raise Conflict('User is already a team member.', code='already_member')

        try:
            with transaction.atomic(using=using):
                membership = TeamMembership.objects.using(using).create(
                    team_id=team_id,
                    user=user,
                    role=role,
                )
        except IntegrityError:
            # a concurrent request inserted the same pair first
            raise Conflict('User is already a team member.', code='already_member')

    logger.info(f"User {user.id} added to team {team_id} as {role} by user {acting_user.id}")
    return membership


def remove_member(acting_user, team_id, target_user_id, using=DEFAULT_DB_ALIAS):
    with transaction.atomic(using=using):
        # lock the team's memberships so concurrent removals see a stable admin count
        list(
            TeamMembership.objects.using(using)
            .select_for_update()
            .filter(team_id=team_id)
            .values_list('pk', flat=True)
        )

        decision = permissions.can_remove_member(acting_user.pk, team_id, target_user_id, using=using)
        if not decision:
            logger.warning(
                f"User {acting_user.id} denied removing user {target_user_id} "
                f"from team {team_id}: {decision.reason}"
            )
            if decision.reason == permissions.LAST_ADMIN:
                raise Conflict('Cannot remove the last admin.', code='last_admin')
            if decision.reason == permissions.NOT_ADMIN:
                raise Forbidden('Only admins can remove other members.', code='not_admin')
            raise NotFoundOrForbidden('Team not found.')

        deleted, _ = (
            TeamMembership.objects.using(using)
            .filter(team_id=team_id, user_id=target_user_id)
            .delete()
        )
        if not deleted:
            raise NotFoundOrForbidden('Member not found.', code='member_not_found')

    logger.info(f"User {target_user_id} removed from team {team_id} by user {acting_user.id}")
