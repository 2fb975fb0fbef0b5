from django.contrib import admin
from .models import RoleRequest, UserPresence, Schedule, AuditLog


@admin.register(RoleRequest)
class RoleRequestAdmin(admin.ModelAdmin):
    list_display = ['user', 'role', 'status', 'reviewed_by', 'reviewed_at', 'created_at']
    list_filter = ['role', 'status']
    search_fields = ['user__username', 'user__first_name', 'user__last_name']
    ordering = ['-created_at']


@admin.register(UserPresence)
class UserPresenceAdmin(admin.ModelAdmin):
    list_display = ['user', 'role', 'last_seen_at']
    list_filter = ['role']
    search_fields = ['user__username']


@admin.register(Schedule)
class ScheduleAdmin(admin.ModelAdmin):
    list_display = ['user', 'date', 'start_time', 'end_time', 'shift_type', 'zone', 'status']
    list_filter = ['shift_type', 'status', 'date']
    search_fields = ['user__username', 'zone']
    ordering = ['-date', 'start_time']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['user', 'action', 'model_name', 'object_id', 'object_reference', 'ip_address', 'created_at']
    list_filter = ['action', 'model_name', 'created_at']
    search_fields = ['user__username', 'model_name', 'object_id', 'object_reference']
    ordering = ['-created_at']
    readonly_fields = ['user', 'action', 'model_name', 'object_id', 'object_name', 'object_reference',
                       'changes', 'ip_address', 'created_at']
