from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.test import TestCase
from rest_framework.exceptions import ValidationError

from tasks.models import Task
from tasktracker.exceptions import Conflict, Forbidden, NotFoundOrForbidden

from . import permissions, services
from .models import Team, TeamMembership

User = get_user_model()


def make_user(email, first_name='Test', last_name='User'):
    return User.objects.create_user(
        email=email,
        first_name=first_name,
        last_name=last_name,
        password='testpass123'
    )


class TeamModelTest(TestCase):
    def setUp(self):
        self.user = make_user('alice@example.com')
        self.team = Team.objects.create(name='Eng', created_by=self.user)

    def test_membership_default_role(self):
        membership = TeamMembership.objects.create(team=self.team, user=self.user)
        self.assertEqual(membership.role, TeamMembership.MEMBER)

    def test_membership_is_unique_per_team_and_user(self):
        TeamMembership.objects.create(team=self.team, user=self.user)
        with self.assertRaises(IntegrityError), transaction.atomic():
            TeamMembership.objects.create(team=self.team, user=self.user, role=TeamMembership.ADMIN)


class AuthorizationEngineTest(TestCase):
    def setUp(self):
        self.admin = make_user('admin@example.com')
        self.member = make_user('member@example.com')
        self.outsider = make_user('outsider@example.com')
        self.team = services.create_team(self.admin, 'Eng')
        TeamMembership.objects.create(team=self.team, user=self.member, role=TeamMembership.MEMBER)
        self.task = Task.objects.create(title='Fix bug', team=self.team, created_by=self.member)

    def test_is_member(self):
        self.assertTrue(permissions.is_member(self.admin.pk, self.team.pk))
        self.assertTrue(permissions.is_member(self.member.pk, self.team.pk))
        self.assertFalse(permissions.is_member(self.outsider.pk, self.team.pk))

    def test_role_of(self):
        self.assertEqual(permissions.role_of(self.admin.pk, self.team.pk), TeamMembership.ADMIN)
        self.assertEqual(permissions.role_of(self.member.pk, self.team.pk), TeamMembership.MEMBER)
        self.assertIsNone(permissions.role_of(self.outsider.pk, self.team.pk))

    def test_decisions_are_total_for_unknown_team(self):
        self.assertFalse(permissions.is_member(self.admin.pk, 999999))
        self.assertIsNone(permissions.role_of(self.admin.pk, 999999))
        self.assertFalse(permissions.can_manage_members(self.admin.pk, 999999))
        decision = permissions.can_remove_member(self.admin.pk, 999999, self.admin.pk)
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.reason, permissions.NOT_MEMBER)

    def test_can_read_task(self):
        self.assertTrue(permissions.can_read_task(self.admin.pk, self.task))
        self.assertTrue(permissions.can_read_task(self.member.pk, self.task))
        self.assertFalse(permissions.can_read_task(self.outsider.pk, self.task))

    def test_can_delete_task_creator_or_admin_only(self):
        other = make_user('other@example.com')
        TeamMembership.objects.create(team=self.team, user=other)

        self.assertTrue(permissions.can_delete_task(self.member.pk, self.task))
        self.assertTrue(permissions.can_delete_task(self.admin.pk, self.task))
        self.assertFalse(permissions.can_delete_task(other.pk, self.task))
        self.assertFalse(permissions.can_delete_task(self.outsider.pk, self.task))

    def test_can_manage_members(self):
        self.assertTrue(permissions.can_manage_members(self.admin.pk, self.team.pk))
        self.assertFalse(permissions.can_manage_members(self.member.pk, self.team.pk))
        self.assertFalse(permissions.can_manage_members(self.outsider.pk, self.team.pk))

    def test_member_may_remove_self(self):
        decision = permissions.can_remove_member(self.member.pk, self.team.pk, self.member.pk)
        self.assertTrue(decision)
        self.assertIsNone(decision.reason)

    def test_member_may_not_remove_others(self):
        decision = permissions.can_remove_member(self.member.pk, self.team.pk, self.admin.pk)
        self.assertFalse(decision)
        self.assertEqual(decision.reason, permissions.NOT_ADMIN)

    def test_admin_may_remove_member(self):
        self.assertTrue(permissions.can_remove_member(self.admin.pk, self.team.pk, self.member.pk))

    def test_sole_admin_may_not_remove_self(self):
        decision = permissions.can_remove_member(self.admin.pk, self.team.pk, self.admin.pk)
        self.assertFalse(decision)
        self.assertEqual(decision.reason, permissions.LAST_ADMIN)

    def test_admin_may_remove_self_when_another_admin_exists(self):
        TeamMembership.objects.filter(team=self.team, user=self.member).update(role=TeamMembership.ADMIN)
        self.assertTrue(permissions.can_remove_member(self.admin.pk, self.team.pk, self.admin.pk))

    def test_outsider_is_denied_as_not_found(self):
        decision = permissions.can_remove_member(self.outsider.pk, self.team.pk, self.member.pk)
        self.assertEqual(decision.reason, permissions.NOT_MEMBER)


class TeamServiceTest(TestCase):
    def setUp(self):
        self.alice = make_user('alice@example.com', 'Alice', 'Smith')
        self.bob = make_user('bob@example.com', 'Bob', 'Jones')
        self.carol = make_user('carol@example.com', 'Carol', 'White')

    def admin_count(self, team):
        return TeamMembership.objects.filter(team=team, role=TeamMembership.ADMIN).count()

    def test_create_team_makes_creator_sole_admin(self):
        team = services.create_team(self.alice, 'Eng', 'Engineering')

        self.assertEqual(team.name, 'Eng')
        self.assertEqual(team.description, 'Engineering')
        self.assertEqual(team.created_by, self.alice)
        membership = TeamMembership.objects.get(team=team)
        self.assertEqual(membership.user, self.alice)
        self.assertEqual(membership.role, TeamMembership.ADMIN)

    def test_create_team_requires_name(self):
        with self.assertRaises(ValidationError):
            services.create_team(self.alice, '   ')
        self.assertEqual(Team.objects.count(), 0)
        self.assertEqual(TeamMembership.objects.count(), 0)

    def test_add_member_by_email_case_insensitive(self):
        team = services.create_team(self.alice, 'Eng')
        membership = services.add_member(self.alice, team.pk, 'BOB@Example.com')

        self.assertEqual(membership.user, self.bob)
        self.assertEqual(membership.role, TeamMembership.MEMBER)

    def test_add_member_with_admin_role(self):
        team = services.create_team(self.alice, 'Eng')
        services.add_member(self.alice, team.pk, 'bob@example.com', TeamMembership.ADMIN)
        self.assertEqual(permissions.role_of(self.bob.pk, team.pk), TeamMembership.ADMIN)

    def test_add_member_twice_conflicts(self):
        team = services.create_team(self.alice, 'Eng')
        services.add_member(self.alice, team.pk, 'bob@example.com')

        with self.assertRaises(Conflict) as ctx:
            services.add_member(self.alice, team.pk, 'bob@example.com')
        self.assertEqual(ctx.exception.get_codes(), 'already_member')
        self.assertEqual(TeamMembership.objects.filter(team=team).count(), 2)

    def test_add_member_unknown_email(self):
        team = services.create_team(self.alice, 'Eng')
        with self.assertRaises(NotFoundOrForbidden) as ctx:
            services.add_member(self.alice, team.pk, 'nobody@example.com')
        self.assertEqual(ctx.exception.get_codes(), 'user_not_found')

    def test_add_member_requires_admin(self):
        team = services.create_team(self.alice, 'Eng')
        services.add_member(self.alice, team.pk, 'bob@example.com')

        with self.assertRaises(Forbidden):
            services.add_member(self.bob, team.pk, 'carol@example.com')
        self.assertFalse(permissions.is_member(self.carol.pk, team.pk))

    def test_add_member_by_outsider_is_not_found(self):
        team = services.create_team(self.alice, 'Eng')
        with self.assertRaises(NotFoundOrForbidden):
            services.add_member(self.carol, team.pk, 'bob@example.com')

    def test_add_member_rejects_unknown_role(self):
        team = services.create_team(self.alice, 'Eng')
        with self.assertRaises(ValidationError):
            services.add_member(self.alice, team.pk, 'bob@example.com', 'owner')

    def test_outsider_with_bad_input_is_not_found(self):
        team = services.create_team(self.alice, 'Eng')
        with self.assertRaises(NotFoundOrForbidden):
            services.add_member(self.carol, team.pk, 'bob@example.com', 'owner')
        with self.assertRaises(NotFoundOrForbidden):
            services.add_member(self.carol, team.pk, '')

    def test_sole_admin_cannot_remove_self(self):
        team = services.create_team(self.alice, 'Eng')

        with self.assertRaises(Conflict) as ctx:
            services.remove_member(self.alice, team.pk, self.alice.pk)
        self.assertEqual(ctx.exception.get_codes(), 'last_admin')
        self.assertTrue(permissions.is_member(self.alice.pk, team.pk))
        self.assertEqual(self.admin_count(team), 1)

    def test_admin_hand_over_then_leave(self):
        team = services.create_team(self.alice, 'Eng')
        services.add_member(self.alice, team.pk, 'bob@example.com', TeamMembership.ADMIN)

        services.remove_member(self.alice, team.pk, self.alice.pk)

        self.assertFalse(permissions.is_member(self.alice.pk, team.pk))
        self.assertEqual(self.admin_count(team), 1)
        self.assertEqual(permissions.role_of(self.bob.pk, team.pk), TeamMembership.ADMIN)

    def test_member_can_leave(self):
        team = services.create_team(self.alice, 'Eng')
        services.add_member(self.alice, team.pk, 'bob@example.com')

        services.remove_member(self.bob, team.pk, self.bob.pk)
        self.assertFalse(permissions.is_member(self.bob.pk, team.pk))

    def test_member_cannot_remove_others(self):
        team = services.create_team(self.alice, 'Eng')
        services.add_member(self.alice, team.pk, 'bob@example.com')
        services.add_member(self.alice, team.pk, 'carol@example.com')

        with self.assertRaises(Forbidden):
            services.remove_member(self.bob, team.pk, self.carol.pk)
        self.assertTrue(permissions.is_member(self.carol.pk, team.pk))

    def test_remove_non_member_is_not_found(self):
        team = services.create_team(self.alice, 'Eng')
        with self.assertRaises(NotFoundOrForbidden) as ctx:
            services.remove_member(self.alice, team.pk, self.carol.pk)
        self.assertEqual(ctx.exception.get_codes(), 'member_not_found')

    def test_list_teams_annotates_role_and_member_count(self):
        eng = services.create_team(self.alice, 'Eng')
        services.add_member(self.alice, eng.pk, 'bob@example.com')
        services.create_team(self.carol, 'Ops')

        teams = list(services.list_teams(self.bob))
        self.assertEqual([t.name for t in teams], ['Eng'])
        self.assertEqual(teams[0].user_role, TeamMembership.MEMBER)
        self.assertEqual(teams[0].member_count, 2)

    def test_get_team_hidden_from_outsiders(self):
        team = services.create_team(self.alice, 'Eng')
        self.assertEqual(services.get_team(self.alice, team.pk).user_role, TeamMembership.ADMIN)
        with self.assertRaises(NotFoundOrForbidden):
            services.get_team(self.bob, team.pk)

    def test_list_members_in_join_order(self):
        team = services.create_team(self.alice, 'Eng')
        services.add_member(self.alice, team.pk, 'bob@example.com')

        members = list(services.list_members(self.bob, team.pk))
        self.assertEqual([m.user for m in members], [self.alice, self.bob])
        with self.assertRaises(NotFoundOrForbidden):
            services.list_members(self.carol, team.pk)


# ------------------------------------------------------------------------views.py tests
from django.urls import reverse
from rest_framework.test import APITestCase
from rest_framework import status


class TeamViewsTest(APITestCase):
    def setUp(self):
        self.alice = make_user('alice@example.com', 'Alice', 'Smith')
        self.bob = make_user('bob@example.com', 'Bob', 'Jones')
        self.client.force_authenticate(user=self.alice)

    def test_requires_authentication(self):
        self.client.force_authenticate(user=None)
        response = self.client.get(reverse('team-list-create'))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_team_list_create(self):
        url = reverse('team-list-create')

        response = self.client.post(url, {'name': 'Eng', 'description': 'Engineering'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['role'], 'admin')
        self.assertEqual(response.data['member_count'], 1)
        self.assertEqual(response.data['created_by_name'], 'Alice Smith')

        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

    def test_team_create_without_name(self):
        response = self.client.post(reverse('team-list-create'), {'name': ''}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('name', response.data)

    def test_team_detail_hidden_from_outsiders(self):
        team = services.create_team(self.alice, 'Eng')
        url = reverse('team-detail', args=[team.id])

        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['role'], 'admin')

        self.client.force_authenticate(user=self.bob)
        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'not_found')

        response = self.client.get(reverse('team-detail', args=[999999]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_add_and_list_members(self):
        team = services.create_team(self.alice, 'Eng')
        url = reverse('team-membership-list', args=[team.id])

        response = self.client.post(url, {'email': 'Bob@example.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['user_id'], self.bob.id)
        self.assertEqual(response.data['role'], 'member')
        self.assertEqual(response.data['name'], 'Bob Jones')

        response = self.client.post(url, {'email': 'bob@example.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'already_member')

        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([m['user_email'] for m in response.data], ['alice@example.com', 'bob@example.com'])

    def test_add_member_unknown_user(self):
        team = services.create_team(self.alice, 'Eng')
        response = self.client.post(
            reverse('team-membership-list', args=[team.id]),
            {'email': 'ghost@example.com'},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'user_not_found')

    def test_non_admin_cannot_add_members(self):
        team = services.create_team(self.alice, 'Eng')
        services.add_member(self.alice, team.pk, 'bob@example.com')
        make_user('carol@example.com')

        self.client.force_authenticate(user=self.bob)
        response = self.client.post(
            reverse('team-membership-list', args=[team.id]),
            {'email': 'carol@example.com'},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['code'], 'not_admin')

    def test_outsider_add_member_is_not_found_before_validation(self):
        team = services.create_team(self.bob, 'Ops')
        response = self.client.post(
            reverse('team-membership-list', args=[team.id]),
            {'email': 'not-an-email', 'role': 'owner'},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'not_found')

    def test_remove_member_flow(self):
        team = services.create_team(self.alice, 'Eng')

        url = reverse('team-membership-detail', args=[team.id, self.alice.id])
        response = self.client.delete(url)
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'last_admin')

        services.add_member(self.alice, team.pk, 'bob@example.com', TeamMembership.ADMIN)
        response = self.client.delete(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Member removed successfully')

        self.assertEqual(
            list(TeamMembership.objects.filter(team=team).values_list('user_id', 'role')),
            [(self.bob.id, TeamMembership.ADMIN)]
        )
