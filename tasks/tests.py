from datetime import timedelta
from unittest import mock

from django.contrib.auth import get_user_model
from django.db import OperationalError, transaction
from django.test import TestCase
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from teams import services as team_services
from teams.models import TeamMembership
from tasktracker.exceptions import Forbidden, NotFoundOrForbidden

from . import services
from .models import Task

User = get_user_model()


def make_user(email, first_name='Test', last_name='User'):
    return User.objects.create_user(
        email=email,
        first_name=first_name,
        last_name=last_name,
        password='testpass123'
    )


class TaskModelTest(TestCase):
    def setUp(self):
        self.user = make_user('test@example.com')
        self.team = team_services.create_team(self.user, 'Eng')

    def test_task_default_values(self):
        task = Task.objects.create(title='Review code', team=self.team, created_by=self.user)
        self.assertEqual(task.status, Task.TODO)
        self.assertEqual(task.priority, Task.MEDIUM)
        self.assertIsNone(task.assigned_to)
        self.assertIsNone(task.description)
        self.assertIsNone(task.due_date)

    def test_newest_first_ordering(self):
        first = Task.objects.create(title='First', team=self.team, created_by=self.user)
        second = Task.objects.create(title='Second', team=self.team, created_by=self.user)
        self.assertEqual(list(Task.objects.all()), [second, first])


class TaskServiceTest(TestCase):
    def setUp(self):
        self.alice = make_user('alice@example.com', 'Alice', 'Smith')
        self.bob = make_user('bob@example.com', 'Bob', 'Jones')
        self.carol = make_user('carol@example.com', 'Carol', 'White')
        self.eng = team_services.create_team(self.alice, 'Eng')
        team_services.add_member(self.alice, self.eng.pk, 'bob@example.com')
        self.ops = team_services.create_team(self.carol, 'Ops')

    def test_create_task_defaults(self):
        task = services.create_task(self.bob, self.eng.pk, 'Fix bug')
        self.assertEqual(task.status, Task.TODO)
        self.assertEqual(task.priority, Task.MEDIUM)
        self.assertEqual(task.created_by, self.bob)
        self.assertEqual(task.team, self.eng)

    def test_create_task_requires_title_and_team(self):
        with self.assertRaises(ValidationError):
            services.create_task(self.bob, self.eng.pk, '')
        with self.assertRaises(ValidationError):
            services.create_task(self.bob, None, 'Fix bug')
        self.assertEqual(Task.objects.count(), 0)

    def test_create_task_requires_membership(self):
        with self.assertRaises(NotFoundOrForbidden):
            services.create_task(self.bob, self.ops.pk, 'Sneaky')
        self.assertEqual(Task.objects.count(), 0)

    def test_create_task_rejects_invalid_status(self):
        with self.assertRaises(ValidationError):
            services.create_task(self.bob, self.eng.pk, 'Fix bug', status='blocked')

    def test_assignee_must_be_team_member(self):
        task = services.create_task(self.alice, self.eng.pk, 'Fix bug', assigned_to=self.bob)
        self.assertEqual(task.assigned_to, self.bob)
        with self.assertRaises(ValidationError):
            services.create_task(self.alice, self.eng.pk, 'Fix bug', assigned_to=self.carol)

    def test_list_tasks_only_from_member_teams(self):
        services.create_task(self.bob, self.eng.pk, 'Eng task')
        services.create_task(self.carol, self.ops.pk, 'Ops task')

        titles = [t.title for t in services.list_tasks(self.bob)]
        self.assertEqual(titles, ['Eng task'])
        for task in services.list_tasks(self.carol):
            self.assertTrue(TeamMembership.objects.filter(team=task.team, user=self.carol).exists())

    def test_list_tasks_filters_and_order(self):
        services.create_task(self.bob, self.eng.pk, 'Low', priority=Task.LOW)
        services.create_task(self.bob, self.eng.pk, 'Done', status=Task.DONE, priority=Task.HIGH)
        services.create_task(self.bob, self.eng.pk, 'High', priority=Task.HIGH)

        self.assertEqual([t.title for t in services.list_tasks(self.bob)], ['High', 'Done', 'Low'])
        self.assertEqual(
            [t.title for t in services.list_tasks(self.bob, {'priority': Task.HIGH})],
            ['High', 'Done']
        )
        self.assertEqual(
            [t.title for t in services.list_tasks(self.bob, {'status': Task.DONE, 'priority': Task.HIGH})],
            ['Done']
        )
        self.assertEqual(list(services.list_tasks(self.bob, {'team': self.ops.pk})), [])

    def test_get_task_hidden_from_outsiders(self):
        task = services.create_task(self.bob, self.eng.pk, 'Fix bug')
        self.assertEqual(services.get_task(self.alice, task.pk), task)
        with self.assertRaises(NotFoundOrForbidden):
            services.get_task(self.carol, task.pk)
        with self.assertRaises(NotFoundOrForbidden):
            services.get_task(self.alice, 999999)

    def test_update_only_present_fields(self):
        task = services.create_task(
            self.bob, self.eng.pk, 'Fix bug',
            description='Crash on start', status=Task.IN_PROGRESS
        )

        updated = services.update_task(self.bob, task.pk, {'priority': Task.HIGH})

        self.assertEqual(updated.priority, Task.HIGH)
        self.assertEqual(updated.title, 'Fix bug')
        self.assertEqual(updated.description, 'Crash on start')
        self.assertEqual(updated.status, Task.IN_PROGRESS)

    def test_update_explicit_null_clears_field(self):
        due = timezone.now().date() + timedelta(days=3)
        task = services.create_task(
            self.bob, self.eng.pk, 'Fix bug',
            description='Crash on start', due_date=due, assigned_to=self.alice
        )

        updated = services.update_task(
            self.bob, task.pk, {'description': None, 'due_date': None, 'assigned_to': None}
        )
        self.assertIsNone(updated.description)
        self.assertIsNone(updated.due_date)
        self.assertIsNone(updated.assigned_to)

    def test_update_rejects_null_on_required_field(self):
        task = services.create_task(self.bob, self.eng.pk, 'Fix bug')
        with self.assertRaises(ValidationError):
            services.update_task(self.bob, task.pk, {'title': None})

    def test_update_with_no_fields(self):
        task = services.create_task(self.bob, self.eng.pk, 'Fix bug')
        with self.assertRaises(ValidationError) as ctx:
            services.update_task(self.bob, task.pk, {})
        self.assertEqual(ctx.exception.get_codes(), ['no_fields'])

    def test_update_requires_membership(self):
        task = services.create_task(self.bob, self.eng.pk, 'Fix bug')
        with self.assertRaises(NotFoundOrForbidden):
            services.update_task(self.carol, task.pk, {'status': Task.DONE})
        task.refresh_from_db()
        self.assertEqual(task.status, Task.TODO)

    def test_delete_scenario(self):
        # B is a member and may create; A is admin and may delete B's task
        task = services.create_task(self.bob, self.eng.pk, 'Fix bug')
        services.delete_task(self.alice, task.pk)
        self.assertFalse(Task.objects.filter(pk=task.pk).exists())

        # B is neither creator nor admin of a task A created
        task = services.create_task(self.alice, self.eng.pk, 'Fix bug')
        with self.assertRaises(Forbidden):
            services.delete_task(self.bob, task.pk)
        self.assertTrue(Task.objects.filter(pk=task.pk).exists())

    def test_creator_can_delete_own_task(self):
        task = services.create_task(self.bob, self.eng.pk, 'Fix bug')
        services.delete_task(self.bob, task.pk)
        self.assertEqual(Task.objects.count(), 0)

    def test_outsider_delete_is_not_found(self):
        task = services.create_task(self.bob, self.eng.pk, 'Fix bug')
        with self.assertRaises(NotFoundOrForbidden):
            services.delete_task(self.carol, task.pk)
        self.assertEqual(Task.objects.count(), 1)

    def test_assign_by_user_id(self):
        task = services.create_task(self.alice, self.eng.pk, 'Fix bug', assigned_to=self.bob.pk)
        self.assertEqual(task.assigned_to_id, self.bob.pk)

        task = services.update_task(self.alice, task.pk, {'assigned_to': self.alice.pk})
        self.assertEqual(task.assigned_to, self.alice)

        with self.assertRaises(ValidationError):
            services.update_task(self.alice, task.pk, {'assigned_to': self.carol.pk})
        with self.assertRaises(ValidationError):
            services.create_task(self.alice, self.eng.pk, 'Other', assigned_to=999999)
        task.refresh_from_db()
        self.assertEqual(task.assigned_to, self.alice)

    def test_writes_run_inside_a_transaction(self):
        with mock.patch('tasks.services.transaction.atomic', wraps=transaction.atomic) as atomic:
            task = services.create_task(self.bob, self.eng.pk, 'Fix bug')
            atomic.assert_any_call(using='default')

            atomic.reset_mock()
            services.update_task(self.bob, task.pk, {'status': Task.DONE})
            atomic.assert_any_call(using='default')

            atomic.reset_mock()
            services.delete_task(self.bob, task.pk)
            atomic.assert_any_call(using='default')

    def test_removed_member_loses_write_access(self):
        task = services.create_task(self.bob, self.eng.pk, 'Fix bug')
        team_services.remove_member(self.alice, self.eng.pk, self.bob.pk)

        with self.assertRaises(NotFoundOrForbidden):
            services.create_task(self.bob, self.eng.pk, 'Late')
        with self.assertRaises(NotFoundOrForbidden):
            services.update_task(self.bob, task.pk, {'title': 'Mine'})
        with self.assertRaises(NotFoundOrForbidden):
            services.delete_task(self.bob, task.pk)
        self.assertEqual(Task.objects.get(pk=task.pk).title, 'Fix bug')


# ------------------------------------------------------------------------views.py tests
from django.urls import reverse
from rest_framework.test import APITestCase
from rest_framework import status


class TaskViewsTest(APITestCase):
    def setUp(self):
        self.alice = make_user('alice@example.com', 'Alice', 'Smith')
        self.bob = make_user('bob@example.com', 'Bob', 'Jones')
        self.carol = make_user('carol@example.com', 'Carol', 'White')
        self.eng = team_services.create_team(self.alice, 'Eng')
        team_services.add_member(self.alice, self.eng.pk, 'bob@example.com')
        self.client.force_authenticate(user=self.bob)

    def test_task_list_create(self):
        url = reverse('task-list-create')

        data = {
            'title': 'Fix bug',
            'team': self.eng.id,
            'priority': 'high',
            'due_date': (timezone.now() + timedelta(days=2)).date().isoformat(),
        }
        response = self.client.post(url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'todo')
        self.assertEqual(response.data['priority'], 'high')
        self.assertEqual(response.data['created_by'], self.bob.id)
        self.assertEqual(response.data['team_name'], 'Eng')

        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

    def test_create_task_missing_title(self):
        response = self.client.post(reverse('task-list-create'), {'team': self.eng.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('title', response.data)

    def test_create_task_in_foreign_team(self):
        ops = team_services.create_team(self.carol, 'Ops')
        response = self.client.post(
            reverse('task-list-create'), {'title': 'Sneaky', 'team': ops.id}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        response = self.client.post(
            reverse('task-list-create'), {'title': 'Sneaky', 'team': 999999}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_task_filtering(self):
        services.create_task(self.bob, self.eng.pk, 'Open')
        services.create_task(self.bob, self.eng.pk, 'Finished', status=Task.DONE)

        url = reverse('task-list-create') + '?status=done'
        response = self.client.get(url)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['status'], 'done')

        response = self.client.get(reverse('task-list-create') + '?status=blocked')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_task_detail(self):
        task = services.create_task(self.bob, self.eng.pk, 'Fix bug', description='Crash')
        url = reverse('task-detail', args=[task.id])

        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.patch(url, {'priority': 'high'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['priority'], 'high')
        self.assertEqual(response.data['title'], 'Fix bug')
        self.assertEqual(response.data['description'], 'Crash')
        self.assertEqual(response.data['status'], 'todo')

        # PUT behaves as a partial update too
        response = self.client.put(url, {'description': None}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNone(response.data['description'])

        response = self.client.patch(url, {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'no_fields')

        response = self.client.delete(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_task_detail_hidden_from_outsiders(self):
        task = services.create_task(self.bob, self.eng.pk, 'Fix bug')
        self.client.force_authenticate(user=self.carol)
        url = reverse('task-detail', args=[task.id])

        self.assertEqual(self.client.get(url).status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(
            self.client.patch(url, {'title': 'Mine'}, format='json').status_code,
            status.HTTP_404_NOT_FOUND
        )
        self.assertEqual(self.client.delete(url).status_code, status.HTTP_404_NOT_FOUND)

    def test_delete_by_non_creator_member(self):
        task = services.create_task(self.alice, self.eng.pk, 'Fix bug')
        response = self.client.delete(reverse('task-detail', args=[task.id]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['code'], 'not_task_owner')

    def test_task_filtering_by_team_alias(self):
        ops = team_services.create_team(self.bob, 'Ops')
        services.create_task(self.bob, self.eng.pk, 'Eng work')
        services.create_task(self.bob, ops.pk, 'Ops work')

        response = self.client.get(reverse('task-list-create') + f'?teamId={ops.id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([t['title'] for t in response.data], ['Ops work'])

        response = self.client.get(reverse('task-list-create') + f'?team={self.eng.id}')
        self.assertEqual([t['title'] for t in response.data], ['Eng work'])

    def test_database_failure_is_internal_error(self):
        with mock.patch('tasks.services.list_tasks', side_effect=OperationalError('connection lost')):
            with self.assertLogs('tasktracker.exceptions', level='ERROR'):
                response = self.client.get(reverse('task-list-create'))
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['code'], 'internal_error')
        self.assertEqual(response.data['detail'], 'Internal server error.')
        self.assertNotIn('connection lost', str(response.data))
