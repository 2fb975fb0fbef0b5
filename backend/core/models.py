from django.conf import settings
from django.db import models


class RoleRequest(models.Model):
    """A user asking to join one of the application role groups"""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
    ]

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='role_requests')
    role = models.CharField(max_length=50)
    reason = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='reviewed_role_requests'
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    review_notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.user} -> {self.role} ({self.status})"

    class Meta:
        db_table = 'role_requests'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'role'],
                condition=models.Q(status='pending'),
                name='unique_pending_role_request',
            ),
        ]


class UserPresence(models.Model):
    """Last heartbeat per user, used to decide who is online"""
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='presence')
    role = models.CharField(max_length=50, blank=True)
    last_seen_at = models.DateTimeField()

    def __str__(self):
        return f"{self.user} @ {self.last_seen_at}"

    class Meta:
        db_table = 'user_presence'
        indexes = [
            models.Index(fields=['role', '-last_seen_at'], name='user_presence_role_seen_idx'),
        ]


class Schedule(models.Model):
    """Staff shift planning"""
    TYPE_CHOICES = [
        ('calls', 'Calls'),
        ('delivery', 'Delivery'),
        ('supervision', 'Supervision'),
        ('off', 'Day off'),
    ]
    STATUS_CHOICES = [
        ('scheduled', 'Scheduled'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='schedules')
    date = models.DateField()
    start_time = models.TimeField()
    end_time = models.TimeField()
    shift_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='calls')
    zone = models.CharField(max_length=100, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='scheduled')
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='created_schedules'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.user} {self.date} {self.start_time}-{self.end_time}"

    class Meta:
        db_table = 'schedules'
        ordering = ['date', 'start_time']


class AuditLog(models.Model):
    """Audit log for critical operations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('status_change', 'Status Change'),
        ('assign_caller', 'Caller Assigned'),
        ('assign_delivery', 'Delivery Assigned'),
        ('payment_add', 'Payment Added'),
        ('stock_adjust', 'Stock Adjustment'),
        ('stock_transfer', 'Stock Transfer'),
        ('supply_review', 'Supply Request Reviewed'),
        ('role_review', 'Role Request Reviewed'),
        ('import', 'Import'),
        ('webhook_order', 'Order Received (Webhook)'),
    ]

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., client name, product name)")
    object_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference identifier (e.g., order number)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='audit_logs_created_idx'),
            models.Index(fields=['action'], name='audit_logs_action_idx'),
            models.Index(fields=['model_name'], name='audit_logs_model_idx'),
            models.Index(fields=['object_reference'], name='audit_logs_reference_idx'),
        ]
