from django.conf import settings
from django.db import models


class AIInstruction(models.Model):
    """Instruction typed in the supervisor console, or a scheduled system run"""
    TYPE_CHOICES = [
        ('custom', 'Custom'),
        ('auto_distribution', 'Automatic Distribution'),
    ]
    STATUS_CHOICES = [
        ('processing', 'Processing'),
        ('completed', 'Completed'),
        ('failed', 'Failed'),
    ]

    instruction = models.TextField()
    instruction_type = models.CharField(max_length=30, choices=TYPE_CHOICES, default='custom')
    action = models.CharField(max_length=50, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='processing')
    result = models.JSONField(default=dict, blank=True)
    error_message = models.TextField(blank=True)
    affected_count = models.PositiveIntegerField(default=0)
    executed_at = models.DateTimeField(null=True, blank=True)
    # Null for system runs
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.instruction[:50]} ({self.status})"

    class Meta:
        db_table = 'ai_instructions'
        ordering = ['-created_at']


class AIExecutionLog(models.Model):
    """One entity touched while executing an instruction"""
    instruction = models.ForeignKey(AIInstruction, on_delete=models.CASCADE, related_name='execution_logs')
    action_type = models.CharField(max_length=50)
    entity_type = models.CharField(max_length=50)
    entity_id = models.CharField(max_length=100)
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.action_type} {self.entity_type}:{self.entity_id}"

    class Meta:
        db_table = 'ai_execution_logs'
        ordering = ['id']
