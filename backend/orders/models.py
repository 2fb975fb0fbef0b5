from django.conf import settings
from django.db import models
from decimal import Decimal


class Order(models.Model):
    """Customer order taken by a caller and delivered by an agent"""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('confirmed', 'Confirmed'),
        ('in_transit', 'In Transit'),
        ('delivered', 'Delivered'),
        ('partial', 'Partially Paid'),
        ('cancelled', 'Cancelled'),
        ('reported', 'Reported'),
    ]

    order_number = models.CharField(max_length=50, unique=True)
    client = models.ForeignKey('clients.Client', on_delete=models.PROTECT, related_name='orders')
    product = models.ForeignKey('catalog.Product', on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    amount_paid = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    amount_due = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    # Caller in charge of confirming the order
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='assigned_orders'
    )
    delivery_person = models.ForeignKey(
        'delivery.DeliveryPerson', on_delete=models.SET_NULL, null=True, blank=True, related_name='orders'
    )
    client_phone = models.CharField(max_length=20, blank=True)
    delivery_address = models.TextField(blank=True)
    delivery_notes = models.TextField(blank=True)
    cancellation_reason = models.TextField(blank=True)
    report_reason = models.TextField(blank=True)
    scheduled_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='created_orders'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs):
        if not self.total_amount:
            self.total_amount = (self.unit_price or Decimal('0')) * self.quantity
        self.amount_due = max(self.total_amount - self.amount_paid, Decimal('0.00'))
        super().save(*args, **kwargs)

    def __str__(self):
        return self.order_number

    class Meta:
        db_table = 'orders'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='orders_status_created_idx'),
            models.Index(fields=['assigned_to', 'status'], name='orders_assigned_status_idx'),
        ]


class Payment(models.Model):
    """Money collected against an order"""
    METHOD_CHOICES = [
        ('cash', 'Cash'),
        ('mobile_money', 'Mobile Money'),
        ('card', 'Card'),
        ('transfer', 'Bank Transfer'),
    ]
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('completed', 'Completed'),
        ('failed', 'Failed'),
        ('refunded', 'Refunded'),
    ]

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='payments')
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    method = models.CharField(max_length=20, choices=METHOD_CHOICES, default='cash')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='completed')
    reference = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Payment {self.id} - {self.order.order_number} - {self.amount}"

    class Meta:
        db_table = 'payments'
        ordering = ['-created_at']


class FollowUp(models.Model):
    """Scheduled call-back on a client, usually tied to an order"""
    TYPE_CHOICES = [
        ('reminder', 'Reminder'),
        ('partial_payment', 'Partial Payment'),
        ('rescheduled', 'Rescheduled'),
        ('retargeting', 'Retargeting'),
    ]
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    client = models.ForeignKey('clients.Client', on_delete=models.CASCADE, related_name='follow_ups')
    order = models.ForeignKey(Order, on_delete=models.CASCADE, null=True, blank=True, related_name='follow_ups')
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='reminder')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    scheduled_at = models.DateTimeField()
    completed_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='assigned_follow_ups'
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='created_follow_ups'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.get_type_display()} - {self.client}"

    class Meta:
        db_table = 'follow_ups'
        ordering = ['scheduled_at']
        constraints = [
            models.UniqueConstraint(
                fields=['order'],
                condition=models.Q(status='pending'),
                name='unique_pending_follow_up_per_order',
            ),
        ]
