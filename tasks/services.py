# tasks/services.py
import logging

from django.db import DEFAULT_DB_ALIAS, transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from tasktracker.exceptions import Forbidden, NotFoundOrForbidden
from teams import permissions
from teams.models import TeamMembership

from .models import Task

logger = logging.getLogger(__name__)

# columns a partial update may assign; anything else in a change set is rejected
UPDATABLE_FIELDS = ('title', 'description', 'status', 'priority', 'assigned_to', 'due_date')
NULLABLE_FIELDS = ('description', 'assigned_to', 'due_date')
LIST_FILTERS = ('status', 'priority', 'team')

CHOICES = {
    'status': {value for value, _ in Task.STATUS_CHOICES},
    'priority': {value for value, _ in Task.PRIORITY_CHOICES},
}


def visible_tasks(user, using=DEFAULT_DB_ALIAS):
    """
    Tasks of every team ``user`` is a member of.

    The membership join is part of the query itself, so a task of a foreign
    team can never be loaded through this queryset.
    """
    return (
        Task.objects.using(using)
        .filter(team__teammembership__user=user)
        .select_related('team', 'created_by', 'assigned_to')
    )


def _validate_choices(fields):
    errors = {}
    for field, allowed in CHOICES.items():
        if field in fields and fields[field] not in allowed:
            errors[field] = f'"{fields[field]}" is not a valid choice.'
    if errors:
        raise ValidationError(errors, code='invalid_choice')


def _validate_assignee(team_id, assignee, using):
    """Return the assignee's user id, or ``None`` to leave the task unassigned."""
    if assignee is None:
        return None
    assignee_id = getattr(assignee, 'pk', assignee)
    if not permissions.is_member(assignee_id, team_id, using=using):
        raise ValidationError(
            {'assigned_to': 'Tasks can only be assigned to team members.'},
            code='assignee_not_member',
        )
    return assignee_id


def _lock_membership(user, team_id, using):
    # held until the surrounding transaction ends; a concurrent remove_member waits on it
    return list(
        TeamMembership.objects.using(using)
        .select_for_update()
        .filter(user_id=user.pk, team_id=team_id)
        .values_list('role', flat=True)
    )


def _get_task_locked(user, task_id, using):
    task = get_task(user, task_id, using=using)
    if not _lock_membership(user, task.team_id, using):
        raise NotFoundOrForbidden('Task not found.')
    return task


def list_tasks(user, filters=None, using=DEFAULT_DB_ALIAS):
    """Newest first; ``filters`` may narrow by status, priority and team id."""
    queryset = visible_tasks(user, using=using)
    for field in LIST_FILTERS:
        value = (filters or {}).get(field)
        if value in (None, ''):
            continue
        lookup = 'team_id' if field == 'team' else field
        queryset = queryset.filter(**{lookup: value})
    return queryset.order_by('-created_at', '-id')


def get_task(user, task_id, using=DEFAULT_DB_ALIAS):
    task = visible_tasks(user, using=using).filter(pk=task_id).first()
    if task is None:
        raise NotFoundOrForbidden('Task not found.')
    return task


def create_task(creator, team_id, title, description=None, status=None, priority=None,
                due_date=None, assigned_to=None, using=DEFAULT_DB_ALIAS):
    errors = {}
    if not title or not str(title).strip():
        errors['title'] = 'Title is required.'
    if not team_id:
        errors['team'] = 'Team ID is required.'
    if errors:
        raise ValidationError(errors, code='required')

    fields = {
        'status': status or Task.TODO,
        'priority': priority or Task.MEDIUM,
    }
    _validate_choices(fields)

    with transaction.atomic(using=using):
        if not _lock_membership(creator, team_id, using):
            logger.warning(f"User {creator.id} denied creating a task in team {team_id}")
            raise NotFoundOrForbidden('Team not found.')
        assigned_to_id = _validate_assignee(team_id, assigned_to, using)

        task = Task.objects.using(using).create(
            title=title,
            description=description or None,
            team_id=team_id,
            created_by=creator,
            assigned_to_id=assigned_to_id,
            due_date=due_date,
            **fields,
        )
    logger.info(f"Task {task.id} created in team {team_id} by user {creator.id}")
    return task


def update_task(user, task_id, changes, using=DEFAULT_DB_ALIAS):
    """
    Apply a partial update.

    ``changes`` holds only the fields the caller sent. A key that is absent
    leaves the column alone; a key set to ``None`` clears a nullable column.
    ``assigned_to`` may be a user or a user id.
    """
    changes = dict(changes or {})
    with transaction.atomic(using=using):
        task = _get_task_locked(user, task_id, using)

        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(
                {field: 'This field cannot be updated.' for field in sorted(unknown)},
                code='invalid',
            )
        if not changes:
            raise ValidationError('No fields to update.', code='no_fields')

        not_nullable = [f for f, v in changes.items() if v is None and f not in NULLABLE_FIELDS]
        if not_nullable:
            raise ValidationError({f: 'This field may not be null.' for f in not_nullable}, code='null')
        if 'title' in changes and not str(changes['title']).strip():
            raise ValidationError({'title': 'This field may not be blank.'}, code='blank')
        _validate_choices(changes)
        if 'assigned_to' in changes:
            changes['assigned_to'] = _validate_assignee(task.team_id, changes['assigned_to'], using)

        Task.objects.using(using).filter(pk=task.pk).update(updated_at=timezone.now(), **changes)
    logger.info(f"Task {task.id} updated by user {user.id}: {sorted(changes)}")
    return get_task(user, task_id, using=using)


def delete_task(user, task_id, using=DEFAULT_DB_ALIAS):
    with transaction.atomic(using=using):
        task = _get_task_locked(user, task_id, using)
        if not permissions.can_delete_task(user.pk, task, using=using):
            logger.warning(f"User {user.id} denied deleting task {task.id}")
            raise Forbidden('You do not have permission to delete this task.', code='not_task_owner')
        task.delete()
    logger.info(f"Task {task_id} deleted by user {user.id}")
