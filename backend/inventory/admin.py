from django.contrib import admin
from .models import StockThreshold, StockAlert, StockMovement, SupplyRequest


@admin.register(StockThreshold)
class StockThresholdAdmin(admin.ModelAdmin):
    list_display = ['product', 'location_type', 'warning_threshold', 'critical_threshold', 'updated_at']
    list_filter = ['location_type']
    search_fields = ['product__name']


@admin.register(StockAlert)
class StockAlertAdmin(admin.ModelAdmin):
    list_display = ['product', 'alert_type', 'delivery_person', 'current_quantity', 'threshold', 'severity',
                    'is_acknowledged', 'created_at']
    list_filter = ['severity', 'alert_type', 'is_acknowledged']
    search_fields = ['product__name']


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ['product', 'movement_type', 'quantity', 'delivery_person', 'order', 'performed_by', 'created_at']
    list_filter = ['movement_type', 'created_at']
    search_fields = ['product__name', 'reason']
    readonly_fields = ['created_at']


@admin.register(SupplyRequest)
class SupplyRequestAdmin(admin.ModelAdmin):
    list_display = ['product', 'requester_type', 'delivery_person', 'quantity_requested', 'quantity_approved',
                    'status', 'created_at']
    list_filter = ['status', 'requester_type']
    search_fields = ['product__name', 'requested_by__username']
