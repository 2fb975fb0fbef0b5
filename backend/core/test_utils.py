"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from backend.catalog.models import Product
from backend.clients.models import Client
from backend.delivery.models import DeliveryPerson, DeliveryPersonStock
from backend.orders.models import Order, FollowUp
from decimal import Decimal
from django.utils import timezone
from datetime import timedelta
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def random_phone():
        return '07' + ''.join(random.choices(string.digits, k=8))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', role=None, is_staff=False, is_superuser=False):
        """Create a test user, optionally in one of the role groups"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        user = User.objects.create_user(
            username=username,
            email=email,
            password=password,
            is_staff=is_staff,
            is_superuser=is_superuser
        )
        if role:
            group, _ = Group.objects.get_or_create(name=role)
            user.groups.add(group)
        return user

    @staticmethod
    def create_product(name=None, price=Decimal('5000.00'), stock=50, is_active=True):
        """Create a test product"""
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        return Product.objects.create(name=name, price=price, stock=stock, is_active=is_active)

    @staticmethod
    def create_client(full_name=None, phone=None, **kwargs):
        """Create a test client"""
        if not full_name:
            full_name = f'Client {TestDataFactory.random_string(6)}'
        if not phone:
            phone = TestDataFactory.random_phone()
        kwargs.setdefault('address', 'Test Address')
        kwargs.setdefault('city', 'Abidjan')
        return Client.objects.create(full_name=full_name, phone=phone, **kwargs)

    @staticmethod
    def create_delivery_person(user=None, status='available', zone='Cocody', is_active=True):
        """Create a delivery agent profile (and its user when none is given)"""
        from backend.core.permissions import ROLE_DELIVERY

        if user is None:
            user = TestDataFactory.create_user(role=ROLE_DELIVERY)
        return DeliveryPerson.objects.create(user=user, status=status, zone=zone, is_active=is_active)

    @staticmethod
    def give_delivery_stock(delivery_person, product, quantity):
        item, _ = DeliveryPersonStock.objects.update_or_create(
            delivery_person=delivery_person, product=product, defaults={'quantity': quantity}
        )
        return item

    @staticmethod
    def create_order(client=None, product=None, quantity=1, status='pending', assigned_to=None,
                     delivery_person=None, created_at=None, **kwargs):
        """
        Create a test order directly, bypassing the order service.

        ``created_at`` overrides the auto_now_add timestamp after saving.
        """
        client = client or TestDataFactory.create_client()
        product = product or TestDataFactory.create_product()
        kwargs.setdefault('unit_price', product.price)
        order = Order.objects.create(
            order_number=f'CMD-TEST-{TestDataFactory.random_string(8).upper()}',
            client=client,
            product=product,
            quantity=quantity,
            status=status,
            assigned_to=assigned_to,
            delivery_person=delivery_person,
            client_phone=client.phone,
            delivery_address=client.address,
            **kwargs
        )
        if created_at is not None:
            Order.objects.filter(pk=order.pk).update(created_at=created_at)
            order.created_at = created_at
        return order

    @staticmethod
    def create_follow_up(client=None, order=None, status='pending', scheduled_at=None, assigned_to=None,
                         follow_up_type='reminder'):
        if order is not None and client is None:
            client = order.client
        client = client or TestDataFactory.create_client()
        return FollowUp.objects.create(
            client=client,
            order=order,
            type=follow_up_type,
            status=status,
            scheduled_at=scheduled_at or timezone.now() + timedelta(days=1),
            assigned_to=assigned_to,
        )


class AuthenticatedAPIClient(APIClient):
    """API client with authentication helpers"""

    def authenticate_user(self, user):
        """Authenticate a user and set JWT token"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return refresh

    def logout(self):
        """Clear authentication"""
        self.credentials()
