from django.conf import settings
from django.db import models

LOCATION_CHOICES = [
    ('warehouse', 'Warehouse'),
    ('delivery_person', 'Delivery Person'),
]


class StockThreshold(models.Model):
    """Warning and critical stock levels per product and location type"""
    product = models.ForeignKey('catalog.Product', on_delete=models.CASCADE, related_name='stock_thresholds')
    location_type = models.CharField(max_length=20, choices=LOCATION_CHOICES)
    warning_threshold = models.PositiveIntegerField(default=10)
    critical_threshold = models.PositiveIntegerField(default=3)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.product} ({self.location_type}): {self.critical_threshold}/{self.warning_threshold}"

    class Meta:
        db_table = 'stock_thresholds'
        unique_together = [['product', 'location_type']]


class StockAlert(models.Model):
    """Low-stock alert on the warehouse or on one delivery agent"""
    SEVERITY_CHOICES = [
        ('info', 'Info'),
        ('warning', 'Warning'),
        ('critical', 'Critical'),
    ]

    product = models.ForeignKey('catalog.Product', on_delete=models.CASCADE, related_name='stock_alerts')
    alert_type = models.CharField(max_length=20, choices=LOCATION_CHOICES)
    delivery_person = models.ForeignKey(
        'delivery.DeliveryPerson', on_delete=models.CASCADE, null=True, blank=True, related_name='stock_alerts'
    )
    threshold = models.PositiveIntegerField()
    current_quantity = models.IntegerField()
    severity = models.CharField(max_length=20, choices=SEVERITY_CHOICES, default='warning')
    is_acknowledged = models.BooleanField(default=False)
    # Null with is_acknowledged set means the system closed the alert
    acknowledged_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='acknowledged_alerts'
    )
    acknowledged_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.get_severity_display()}: {self.product} ({self.current_quantity})"

    class Meta:
        db_table = 'stock_alerts'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['is_acknowledged', 'alert_type'], name='stock_alerts_open_type_idx'),
        ]


class StockMovement(models.Model):
    """Append-only stock history"""
    MOVEMENT_TYPE_CHOICES = [
        ('in', 'Stock In'),
        ('out', 'Stock Out'),
        ('transfer_to_delivery', 'Transfer To Delivery'),
        ('transfer_from_delivery', 'Transfer From Delivery'),
        ('adjustment', 'Adjustment'),
        ('sale', 'Sale'),
    ]

    product = models.ForeignKey('catalog.Product', on_delete=models.CASCADE, related_name='stock_movements')
    movement_type = models.CharField(max_length=30, choices=MOVEMENT_TYPE_CHOICES)
    # Adjustments are signed; other movement types store the moved quantity
    quantity = models.IntegerField()
    delivery_person = models.ForeignKey(
        'delivery.DeliveryPerson', on_delete=models.SET_NULL, null=True, blank=True, related_name='stock_movements'
    )
    order = models.ForeignKey('orders.Order', on_delete=models.SET_NULL, null=True, blank=True, related_name='stock_movements')
    reason = models.TextField(blank=True)
    performed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.get_movement_type_display()} {self.quantity} x {self.product}"

    class Meta:
        db_table = 'stock_movements'
        ordering = ['-created_at', '-id']


class SupplyRequest(models.Model):
    """Restocking request from the warehouse or a delivery agent"""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
        ('fulfilled', 'Fulfilled'),
    ]

    product = models.ForeignKey('catalog.Product', on_delete=models.CASCADE, related_name='supply_requests')
    requested_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='supply_requests')
    requester_type = models.CharField(max_length=20, choices=LOCATION_CHOICES)
    delivery_person = models.ForeignKey(
        'delivery.DeliveryPerson', on_delete=models.CASCADE, null=True, blank=True, related_name='supply_requests'
    )
    quantity_requested = models.PositiveIntegerField()
    quantity_approved = models.PositiveIntegerField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    reason = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='reviewed_supply_requests'
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    fulfilled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.product} x {self.quantity_requested} ({self.status})"

    class Meta:
        db_table = 'supply_requests'
        ordering = ['-created_at']
