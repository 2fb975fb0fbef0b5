from django.contrib import admin
from .models import DeliveryPerson, DeliveryPersonStock


@admin.register(DeliveryPerson)
class DeliveryPersonAdmin(admin.ModelAdmin):
    list_display = ['user', 'zone', 'vehicle_type', 'status', 'is_active', 'daily_deliveries', 'daily_amount']
    list_filter = ['status', 'is_active', 'zone']
    search_fields = ['user__username', 'user__first_name', 'user__last_name', 'phone']


@admin.register(DeliveryPersonStock)
class DeliveryPersonStockAdmin(admin.ModelAdmin):
    list_display = ['delivery_person', 'product', 'quantity', 'updated_at']
    search_fields = ['product__name', 'delivery_person__user__username']
