from rest_framework import serializers
from django.contrib.auth import get_user_model
from .models import DeliveryPerson, DeliveryPersonStock

User = get_user_model()


class DeliveryPersonSerializer(serializers.ModelSerializer):
    user = serializers.PrimaryKeyRelatedField(queryset=User.objects.all())
    name = serializers.CharField(read_only=True)
    pending_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = DeliveryPerson
        fields = ['id', 'user', 'name', 'phone', 'zone', 'vehicle_type', 'status', 'is_active',
                  'daily_deliveries', 'daily_amount', 'pending_count', 'created_at', 'updated_at']
        read_only_fields = ['daily_deliveries', 'daily_amount', 'created_at', 'updated_at']


class DeliveryStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=DeliveryPerson.STATUS_CHOICES)


class DeliveryPersonStockSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_price = serializers.DecimalField(source='product.price', max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = DeliveryPersonStock
        fields = ['id', 'delivery_person', 'product', 'product_name', 'product_price', 'quantity', 'updated_at']


class DispatchAssignSerializer(serializers.Serializer):
    order_id = serializers.IntegerField()
    delivery_person_id = serializers.IntegerField()
