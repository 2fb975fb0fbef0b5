from rest_framework import serializers
from decimal import Decimal
from django.contrib.auth import get_user_model
from .models import Order, Payment, FollowUp

User = get_user_model()


class PaymentSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source='order.order_number', read_only=True)
    created_by_username = serializers.CharField(source='created_by.username', read_only=True, allow_null=True)

    class Meta:
        model = Payment
        fields = ['id', 'order', 'order_number', 'amount', 'method', 'status', 'reference', 'notes',
                  'created_by', 'created_by_username', 'created_at']
        read_only_fields = ['order', 'created_by', 'created_at']

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Amount must be greater than 0.")
        return value


class OrderListSerializer(serializers.ModelSerializer):
    client_name = serializers.CharField(source='client.full_name', read_only=True)
    product_name = serializers.CharField(source='product.name', read_only=True, allow_null=True)
    assigned_to_username = serializers.CharField(source='assigned_to.username', read_only=True, allow_null=True)
    delivery_person_name = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = ['id', 'order_number', 'client', 'client_name', 'client_phone', 'product', 'product_name',
                  'quantity', 'total_amount', 'amount_paid', 'amount_due', 'status', 'assigned_to',
                  'assigned_to_username', 'delivery_person', 'delivery_person_name', 'scheduled_at',
                  'delivered_at', 'created_at']

    def get_delivery_person_name(self, obj):
        if obj.delivery_person:
            return obj.delivery_person.name
        return None


class OrderSerializer(OrderListSerializer):
    payments = PaymentSerializer(many=True, read_only=True)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=Decimal('0'))
    total_amount = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, min_value=Decimal('0'))
    quantity = serializers.IntegerField(min_value=1, default=1)

    class Meta(OrderListSerializer.Meta):
        fields = OrderListSerializer.Meta.fields + [
            'unit_price', 'delivery_address', 'delivery_notes', 'cancellation_reason', 'report_reason',
            'created_by', 'updated_at', 'payments',
        ]
        read_only_fields = ['order_number', 'amount_paid', 'amount_due', 'status', 'cancellation_reason',
                            'report_reason', 'delivered_at', 'created_by', 'created_at', 'updated_at']

    def validate(self, data):
        client = data.get('client') or getattr(self.instance, 'client', None)
        if client is None:
            raise serializers.ValidationError({'client': 'This field is required.'})
        product = data.get('product', getattr(self.instance, 'product', None))
        if product is not None and not product.is_active and 'product' in data:
            raise serializers.ValidationError({'product': 'Product is inactive.'})
        if self.instance is None and product is None and not data.get('unit_price') and not data.get('total_amount'):
            raise serializers.ValidationError({'unit_price': 'A price is required when no product is selected.'})
        return data


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES)
    reason = serializers.CharField(required=False, allow_blank=True, default='')
    scheduled_at = serializers.DateTimeField(required=False, allow_null=True)
    amount_paid = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, min_value=Decimal('0'))


class OrderAssignCallerSerializer(serializers.Serializer):
    assigned_to = serializers.PrimaryKeyRelatedField(queryset=User.objects.filter(is_active=True), allow_null=True)


class FollowUpSerializer(serializers.ModelSerializer):
    client_name = serializers.CharField(source='client.full_name', read_only=True)
    client_phone = serializers.CharField(source='client.phone', read_only=True)
    order_number = serializers.CharField(source='order.order_number', read_only=True, allow_null=True)

    class Meta:
        model = FollowUp
        fields = ['id', 'client', 'client_name', 'client_phone', 'order', 'order_number', 'type', 'status',
                  'scheduled_at', 'completed_at', 'notes', 'assigned_to', 'created_by', 'created_at', 'updated_at']
        read_only_fields = ['completed_at', 'created_by', 'created_at', 'updated_at']

    def validate(self, data):
        client = data.get('client') or getattr(self.instance, 'client', None)
        order = data.get('order', getattr(self.instance, 'order', None))
        if order is not None and client is not None and order.client_id != client.id:
            raise serializers.ValidationError({'order': 'Order does not belong to this client.'})

        status = data.get('status', getattr(self.instance, 'status', 'pending'))
        if order is not None and status == 'pending':
            pending = FollowUp.objects.filter(order=order, status='pending')
            if self.instance:
                pending = pending.exclude(pk=self.instance.pk)
            if pending.exists():
                raise serializers.ValidationError({'order': 'A pending follow-up already exists for this order.'})
        return data
