"""
Test suite for Core module
Tests: Authentication, roles, role requests, presence, schedules, audit log, search, health, cache, migrations
"""
from datetime import timedelta
from io import StringIO
from unittest import mock

from django.contrib.auth.models import Group
from django.core.cache import cache
from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from backend.core.models import RoleRequest, UserPresence, AuditLog
from backend.core.cache_utils import (
    SEGMENTS_CACHE_PREFIX, cache_set, invalidate_segments_cache, make_cache_key
)
from backend.core.permissions import (
    ROLE_CALLER, ROLE_DELIVERY, ROLE_SUPERVISOR, ROLE_ADMIN, get_user_roles, has_role, primary_role
)
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.core.utils import get_online_presences


class RoleTests(TestCase):
    """Test group based role checks"""

    def test_superuser_without_group_is_admin(self):
        user = TestDataFactory.create_user(is_superuser=True, is_staff=True)
        self.assertEqual(get_user_roles(user), [ROLE_ADMIN])
        self.assertTrue(has_role(user, ROLE_CALLER))

    def test_plain_user_has_no_role(self):
        user = TestDataFactory.create_user()
        self.assertEqual(get_user_roles(user), [])
        self.assertFalse(has_role(user, ROLE_CALLER))

    def test_primary_role_prefers_supervisor(self):
        user = TestDataFactory.create_user(role=ROLE_CALLER)
        user.groups.add(Group.objects.get_or_create(name=ROLE_SUPERVISOR)[0])
        self.assertEqual(primary_role(user), ROLE_SUPERVISOR)

    def test_create_user_groups_command(self):
        call_command('create_user_groups', stdout=StringIO())
        names = set(Group.objects.values_list('name', flat=True))
        self.assertTrue({ROLE_CALLER, ROLE_DELIVERY, ROLE_SUPERVISOR, ROLE_ADMIN} <= names)


class AuthenticationTests(TestCase):
    """Test login, registration and the current user endpoint"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()

    def test_register_creates_user_without_role(self):
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'newcaller',
            'email': 'newcaller@test.com',
            'password': 'Str0ngPass!word',
            'password_confirm': 'Str0ngPass!word',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data)
        self.assertEqual(response.data['user']['roles'], [])

    def test_register_password_mismatch(self):
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'mismatch',
            'password': 'Str0ngPass!word',
            'password_confirm': 'different',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_login_returns_tokens(self):
        TestDataFactory.create_user(username='agent1', password='testpass123', role=ROLE_CALLER)
        response = self.client.post('/api/v1/auth/login/', {'username': 'agent1', 'password': 'testpass123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)

    def test_me_requires_authentication(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_lists_groups(self):
        user = TestDataFactory.create_user(role=ROLE_CALLER)
        self.client.authenticate_user(user)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['groups'], [ROLE_CALLER])


class UserAdministrationTests(TestCase):
    """Test admin-only user management"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.client = AuthenticatedAPIClient()

    def test_caller_cannot_list_users(self):
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_CALLER))
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_users_filtered_by_role(self):
        TestDataFactory.create_user(role=ROLE_CALLER)
        TestDataFactory.create_user(role=ROLE_DELIVERY)
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/users/', {'role': ROLE_CALLER})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

    def test_delete_deactivates_user(self):
        user = TestDataFactory.create_user()
        self.client.authenticate_user(self.admin)
        response = self.client.delete(f'/api/v1/users/{user.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        user.refresh_from_db()
        self.assertFalse(user.is_active)


class RoleRequestTests(TestCase):
    """Test asking for and reviewing roles"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.supervisor = TestDataFactory.create_user(role=ROLE_SUPERVISOR)
        self.client = AuthenticatedAPIClient()

    def test_request_and_approve_role(self):
        self.client.authenticate_user(self.user)
        response = self.client.post('/api/v1/role-requests/', {'role': ROLE_CALLER, 'reason': 'New hire'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        self.client.authenticate_user(self.supervisor)
        response = self.client.post(
            f"/api/v1/role-requests/{response.data['id']}/review/", {'decision': 'approved'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(self.user.groups.filter(name=ROLE_CALLER).exists())
        self.assertTrue(AuditLog.objects.filter(action='role_review').exists())

    def test_duplicate_pending_request_rejected(self):
        RoleRequest.objects.create(user=self.user, role=ROLE_CALLER)
        self.client.authenticate_user(self.user)
        response = self.client.post('/api/v1/role-requests/', {'role': ROLE_CALLER}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_role_rejected(self):
        self.client.authenticate_user(self.user)
        response = self.client.post('/api/v1/role-requests/', {'role': 'Manager'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_review_twice_fails(self):
        role_request = RoleRequest.objects.create(user=self.user, role=ROLE_CALLER, status='rejected')
        self.client.authenticate_user(self.supervisor)
        response = self.client.post(f'/api/v1/role-requests/{role_request.id}/review/', {'decision': 'approved'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_user_only_sees_own_requests(self):
        RoleRequest.objects.create(user=self.user, role=ROLE_CALLER)
        RoleRequest.objects.create(user=TestDataFactory.create_user(), role=ROLE_DELIVERY)
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/role-requests/')
        self.assertEqual(len(response.data), 1)


class PresenceTests(TestCase):
    """Test heartbeat and the online list"""

    def test_heartbeat_records_role_slug(self):
        user = TestDataFactory.create_user(role=ROLE_CALLER)
        client = AuthenticatedAPIClient()
        client.authenticate_user(user)
        response = client.post('/api/v1/presence/heartbeat/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(UserPresence.objects.get(user=user).role, 'caller')

    def test_stale_presence_is_offline(self):
        fresh = TestDataFactory.create_user()
        stale = TestDataFactory.create_user()
        UserPresence.objects.create(user=fresh, role='caller', last_seen_at=timezone.now())
        UserPresence.objects.create(user=stale, role='caller', last_seen_at=timezone.now() - timedelta(hours=1))
        self.assertEqual([p.user for p in get_online_presences(role='caller')], [fresh])


class ScheduleTests(TestCase):
    """Test shift planning permissions and validation"""

    def setUp(self):
        self.supervisor = TestDataFactory.create_user(role=ROLE_SUPERVISOR)
        self.caller = TestDataFactory.create_user(role=ROLE_CALLER)
        self.client = AuthenticatedAPIClient()

    def _payload(self, **overrides):
        payload = {'user': self.caller.id, 'date': '2026-01-05', 'start_time': '08:00', 'end_time': '16:00'}
        payload.update(overrides)
        return payload

    def test_supervisor_creates_schedule(self):
        self.client.authenticate_user(self.supervisor)
        response = self.client.post('/api/v1/schedules/', self._payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_end_before_start_rejected(self):
        self.client.authenticate_user(self.supervisor)
        response = self.client.post('/api/v1/schedules/', self._payload(end_time='07:00'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_caller_cannot_create_schedule(self):
        self.client.authenticate_user(self.caller)
        response = self.client.post('/api/v1/schedules/', self._payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class SearchTests(TestCase):
    """Test global search"""

    def setUp(self):
        self.supervisor = TestDataFactory.create_user(role=ROLE_SUPERVISOR)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.supervisor)

    def test_empty_query(self):
        response = self.client.get('/api/v1/search/')
        self.assertEqual(response.data, {'clients': [], 'orders': [], 'products': []})

    def test_search_finds_client_and_order(self):
        client = TestDataFactory.create_client(full_name='Awa Kone')
        TestDataFactory.create_order(client=client)
        response = self.client.get('/api/v1/search/', {'q': 'Awa'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['clients']), 1)
        self.assertEqual(len(response.data['orders']), 1)


class HealthCheckTests(TestCase):
    """Test the anonymous health endpoint"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()

    def test_healthy_without_authentication(self):
        response = self.client.get('/api/v1/health/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'healthy')
        self.assertEqual(response.data['checks'], {'database': True, 'api': True})
        self.assertIn('version', response.data)
        self.assertGreaterEqual(response.data['uptime'], 0)

    def test_database_failure_reports_unhealthy(self):
        with mock.patch('backend.core.views.connection') as db_connection:
            db_connection.cursor.side_effect = DatabaseError('connection refused')
            response = self.client.get('/api/v1/health/')
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(response.data['status'], 'unhealthy')
        self.assertFalse(response.data['checks']['database'])


class CacheInvalidationTests(TestCase):
    """Test prefix invalidation on the local-memory cache"""

    def setUp(self):
        cache.clear()

    def test_invalidation_keeps_unrelated_keys(self):
        segment_key = make_cache_key(SEGMENTS_CACHE_PREFIX, 'summary')
        cache_set(SEGMENTS_CACHE_PREFIX, segment_key, {'total': 3}, 60)
        cache.set('throttle_webhook_127.0.0.1', [1, 2], 60)

        invalidate_segments_cache()

        self.assertIsNone(cache.get(segment_key))
        self.assertEqual(cache.get('throttle_webhook_127.0.0.1'), [1, 2])

    def test_keys_registered_after_invalidation_are_dropped_next_time(self):
        first = make_cache_key(SEGMENTS_CACHE_PREFIX, 'a')
        cache_set(SEGMENTS_CACHE_PREFIX, first, 1, 60)
        invalidate_segments_cache()
        second = make_cache_key(SEGMENTS_CACHE_PREFIX, 'b')
        cache_set(SEGMENTS_CACHE_PREFIX, second, 2, 60)
        invalidate_segments_cache()
        self.assertIsNone(cache.get(second))


class MigrationTests(TestCase):
    """Test that committed migrations match the models"""

    def test_no_missing_migrations(self):
        out = StringIO()
        try:
            call_command('makemigrations', '--check', '--dry-run', stdout=out, stderr=out)
        except SystemExit:
            self.fail(f"Models have changes without a migration:\n{out.getvalue()}")
