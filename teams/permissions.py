# teams/permissions.py
"""
Membership and authorization decisions.

Every function here only reads the store. ``using`` names the database alias
to read from, so callers decide which store backs the decision. Absence of a
membership row is an answer (``False``/``None``), never an error.
"""
from dataclasses import dataclass
from typing import Optional

from django.db import DEFAULT_DB_ALIAS

from .models import TeamMembership

ADMIN = TeamMembership.ADMIN

# reasons carried by a denied Decision
NOT_MEMBER = 'not_found'
NOT_ADMIN = 'not_admin'
LAST_ADMIN = 'last_admin'


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self):
        return self.allowed


ALLOW = Decision(True)


def _memberships(using):
    return TeamMembership.objects.using(using)


def is_member(user_id, team_id, using=DEFAULT_DB_ALIAS) -> bool:
    return _memberships(using).filter(user_id=user_id, team_id=team_id).exists()


def role_of(user_id, team_id, using=DEFAULT_DB_ALIAS) -> Optional[str]:
    return (
        _memberships(using)
        .filter(user_id=user_id, team_id=team_id)
        .values_list('role', flat=True)
        .first()
    )


def admin_count(team_id, using=DEFAULT_DB_ALIAS) -> int:
    return _memberships(using).filter(team_id=team_id, role=ADMIN).count()


def can_read_task(user_id, task, using=DEFAULT_DB_ALIAS) -> bool:
    return is_member(user_id, task.team_id, using=using)


def can_delete_task(user_id, task, using=DEFAULT_DB_ALIAS) -> bool:
    if task.created_by_id == user_id:
        return True
    return role_of(user_id, task.team_id, using=using) == ADMIN


def can_manage_members(user_id, team_id, using=DEFAULT_DB_ALIAS) -> bool:
    return role_of(user_id, team_id, using=using) == ADMIN


def can_remove_member(acting_user_id, team_id, target_user_id, using=DEFAULT_DB_ALIAS) -> Decision:
    """
    Admins may remove anyone and every member may remove themself, but a
    team's only admin can never be removed, not even by themself.
    """
    acting_role = role_of(acting_user_id, team_id, using=using)
    if acting_role is None:
        return Decision(False, NOT_MEMBER)

    removing_self = acting_user_id == target_user_id
    if acting_role != ADMIN and not removing_self:
        return Decision(False, NOT_ADMIN)

    target_role = acting_role if removing_self else role_of(target_user_id, team_id, using=using)
    if target_role == ADMIN and admin_count(team_id, using=using) <= 1:
        return Decision(False, LAST_ADMIN)

    return ALLOW
