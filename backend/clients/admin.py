from django.contrib import admin
from .models import Client


@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ['full_name', 'phone', 'city', 'zone', 'segment', 'total_orders', 'total_spent', 'campaign_group']
    list_filter = ['segment', 'city', 'campaign_group']
    search_fields = ['full_name', 'phone', 'phone_secondary']
    ordering = ['-created_at']
    readonly_fields = ['total_orders', 'total_spent', 'created_at', 'updated_at']
