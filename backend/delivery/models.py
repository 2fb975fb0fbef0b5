from django.conf import settings
from django.db import models
from decimal import Decimal


class DeliveryPerson(models.Model):
    """Delivery agent profile attached to a user"""
    STATUS_CHOICES = [
        ('available', 'Available'),
        ('busy', 'Busy'),
        ('offline', 'Offline'),
    ]

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='delivery_profile')
    phone = models.CharField(max_length=20, blank=True)
    zone = models.CharField(max_length=100, blank=True)
    vehicle_type = models.CharField(max_length=50, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='offline')
    is_active = models.BooleanField(default=True)
    daily_deliveries = models.PositiveIntegerField(default=0)
    daily_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def name(self):
        return self.user.get_full_name() or self.user.username

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'delivery_persons'
        ordering = ['id']


class DeliveryPersonStock(models.Model):
    """Quantity of a product carried by a delivery agent"""
    delivery_person = models.ForeignKey(DeliveryPerson, on_delete=models.CASCADE, related_name='stock_items')
    product = models.ForeignKey('catalog.Product', on_delete=models.CASCADE, related_name='delivery_stock')
    quantity = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.delivery_person} - {self.product}: {self.quantity}"

    class Meta:
        db_table = 'delivery_person_stock'
        unique_together = [['delivery_person', 'product']]
