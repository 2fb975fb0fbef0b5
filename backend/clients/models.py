from django.db import models
from decimal import Decimal


class Client(models.Model):
    """End customer reached by callers and served by delivery agents"""
    SEGMENT_CHOICES = [
        ('new', 'New'),
        ('regular', 'Regular'),
        ('vip', 'VIP'),
        ('inactive', 'Inactive'),
        ('problematic', 'Problematic'),
    ]

    full_name = models.CharField(max_length=200)
    # Stored normalized (10 digits)
    phone = models.CharField(max_length=20, unique=True)
    phone_secondary = models.CharField(max_length=20, blank=True)
    address = models.TextField(blank=True)
    city = models.CharField(max_length=100, blank=True)
    zone = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    segment = models.CharField(max_length=20, choices=SEGMENT_CHOICES, default='new')
    total_orders = models.PositiveIntegerField(default=0)
    total_spent = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    campaign_group = models.CharField(max_length=50, blank=True, db_index=True)
    campaign_batch = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.full_name} ({self.phone})"

    class Meta:
        db_table = 'clients'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['segment'], name='clients_segment_idx'),
            models.Index(fields=['zone'], name='clients_zone_idx'),
        ]
