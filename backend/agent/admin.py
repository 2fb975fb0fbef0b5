from django.contrib import admin
from .models import AIInstruction, AIExecutionLog


class AIExecutionLogInline(admin.TabularInline):
    model = AIExecutionLog
    extra = 0
    readonly_fields = ['action_type', 'entity_type', 'entity_id', 'details', 'created_at']


@admin.register(AIInstruction)
class AIInstructionAdmin(admin.ModelAdmin):
    list_display = ['instruction', 'instruction_type', 'action', 'status', 'affected_count', 'created_by', 'created_at']
    list_filter = ['instruction_type', 'status', 'action']
    search_fields = ['instruction']
    inlines = [AIExecutionLogInline]
