from django.test import TestCase
from django.contrib.auth import get_user_model

# Get the custom user model
User = get_user_model()


class CustomUserModelTest(TestCase):
    def test_create_user(self):
        user = User.objects.create_user(
            email='Test@Example.com',
            first_name='John',
            last_name='Doe',
            password='testpass123'
        )
        self.assertEqual(user.email, 'test@example.com')
        self.assertEqual(user.full_name, 'John Doe')
        self.assertTrue(user.check_password('testpass123'))
        self.assertNotEqual(user.password, 'testpass123')

    def test_email_uniqueness(self):
        User.objects.create_user(
            email='test@example.com',
            first_name='John',
            last_name='Doe',
            password='testpass123'
        )
        with self.assertRaises(Exception):
            User.objects.create_user(
                email='TEST@example.com',
                first_name='Jane',
                last_name='Doe',
                password='testpass123'
            )


from rest_framework.test import APITestCase
from rest_framework import status


class UserRegistrationViewTest(APITestCase):
    def test_user_registration_success(self):
        data = {
            'email': 'Test@Example.com',
            'first_name': 'John',
            'last_name': 'Doe',
            'password': 'testpass123',
        }
        response = self.client.post('/api/auth/register/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['message'], 'User registered successfully')
        self.assertIn('access_token', response.data)
        self.assertEqual(response.data['user']['email'], 'test@example.com')

    def test_user_registration_missing_fields(self):
        data = {'email': 'test@example.com', 'password': 'testpass123'}
        response = self.client.post('/api/auth/register/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('first_name', response.data)

    def test_user_registration_short_password(self):
        data = {
            'email': 'test@example.com',
            'first_name': 'John',
            'last_name': 'Doe',
            'password': '123',
        }
        response = self.client.post('/api/auth/register/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('password', response.data)

    def test_user_registration_duplicate_email(self):
        User.objects.create_user(email='test@example.com', password='testpass123')
        data = {
            'email': 'TEST@example.com',
            'first_name': 'John',
            'last_name': 'Doe',
            'password': 'testpass123',
        }
        response = self.client.post('/api/auth/register/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'email_taken')


class UserLoginViewTest(APITestCase):
    def setUp(self):
        self.user = User.objects.create_user(
            email='test@example.com',
            first_name='John',
            last_name='Doe',
            password='testpass123'
        )

    def test_user_login_success(self):
        data = {'email': 'Test@Example.com', 'password': 'testpass123'}
        response = self.client.post('/api/auth/login/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Login successful')
        self.assertIn('access_token', response.data)
        self.assertIn('refresh_token', response.data)

    def test_user_login_invalid_credentials(self):
        data = {'email': 'test@example.com', 'password': 'wrongpass'}
        response = self.client.post('/api/auth/login/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['detail'], 'Invalid email or password.')
        self.assertEqual(response.data['code'], 'invalid_credentials')

    def test_unknown_email_looks_like_wrong_password(self):
        data = {'email': 'nobody@example.com', 'password': 'testpass123'}
        response = self.client.post('/api/auth/login/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['detail'], 'Invalid email or password.')

    def test_token_authenticates_current_user(self):
        response = self.client.post(
            '/api/auth/login/',
            {'email': 'test@example.com', 'password': 'testpass123'},
            format='json'
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access_token']}")

        response = self.client.get('/api/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['email'], 'test@example.com')
        self.assertEqual(response.data['first_name'], 'John')


class HealthCheckTest(APITestCase):
    def test_health_check(self):
        response = self.client.get('/health/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'ok')
