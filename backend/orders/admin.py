from django.contrib import admin
from .models import Order, Payment, FollowUp


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    readonly_fields = ['created_at']


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'client', 'product', 'quantity', 'total_amount', 'amount_due', 'status',
                    'assigned_to', 'delivery_person', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['order_number', 'client__full_name', 'client__phone']
    readonly_fields = ['order_number', 'amount_due', 'created_at', 'updated_at']
    inlines = [PaymentInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['order', 'amount', 'method', 'status', 'reference', 'created_at']
    list_filter = ['method', 'status']
    search_fields = ['order__order_number', 'reference']


@admin.register(FollowUp)
class FollowUpAdmin(admin.ModelAdmin):
    list_display = ['client', 'order', 'type', 'status', 'scheduled_at', 'assigned_to']
    list_filter = ['type', 'status']
    search_fields = ['client__full_name', 'client__phone', 'order__order_number']
