from rest_framework import serializers
from .models import StockThreshold, StockAlert, StockMovement, SupplyRequest, LOCATION_CHOICES


class StockThresholdSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)

    class Meta:
        model = StockThreshold
        fields = ['id', 'product', 'product_name', 'location_type', 'warning_threshold', 'critical_threshold',
                  'updated_at']
        extra_kwargs = {
            'warning_threshold': {'required': True},
            'critical_threshold': {'required': True},
        }
        # Upsert on (product, location_type) replaces the unique-together check
        validators = []

    def validate(self, data):
        if data['critical_threshold'] > data['warning_threshold']:
            raise serializers.ValidationError(
                {'critical_threshold': 'Critical threshold cannot exceed the warning threshold.'}
            )
        return data


class StockAlertSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_price = serializers.DecimalField(source='product.price', max_digits=12, decimal_places=2, read_only=True)
    delivery_person_name = serializers.SerializerMethodField()
    delivery_person_zone = serializers.CharField(source='delivery_person.zone', read_only=True, allow_null=True)

    class Meta:
        model = StockAlert
        fields = ['id', 'product', 'product_name', 'product_price', 'alert_type', 'delivery_person',
                  'delivery_person_name', 'delivery_person_zone', 'threshold', 'current_quantity', 'severity',
                  'is_acknowledged', 'acknowledged_by', 'acknowledged_at', 'created_at', 'updated_at']
        read_only_fields = fields

    def get_delivery_person_name(self, obj):
        if obj.delivery_person:
            return obj.delivery_person.name
        return None


class StockMovementSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    performed_by_username = serializers.CharField(source='performed_by.username', read_only=True, allow_null=True)

    class Meta:
        model = StockMovement
        fields = ['id', 'product', 'product_name', 'movement_type', 'quantity', 'delivery_person', 'order',
                  'reason', 'performed_by', 'performed_by_username', 'created_at']
        read_only_fields = fields


class StockTransferSerializer(serializers.Serializer):
    product = serializers.IntegerField()
    delivery_person = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)
    direction = serializers.ChoiceField(choices=[('to_delivery', 'To delivery'), ('from_delivery', 'From delivery')],
                                        default='to_delivery')
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class SupplyRequestSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_stock = serializers.IntegerField(source='product.stock', read_only=True)
    requested_by_username = serializers.CharField(source='requested_by.username', read_only=True)
    requester_type = serializers.ChoiceField(choices=LOCATION_CHOICES)
    quantity_requested = serializers.IntegerField(min_value=1)

    class Meta:
        model = SupplyRequest
        fields = ['id', 'product', 'product_name', 'product_stock', 'requested_by', 'requested_by_username',
                  'requester_type', 'delivery_person', 'quantity_requested', 'quantity_approved', 'status',
                  'reason', 'notes', 'reviewed_by', 'reviewed_at', 'fulfilled_at', 'created_at', 'updated_at']
        read_only_fields = ['requested_by', 'quantity_approved', 'status', 'notes', 'reviewed_by', 'reviewed_at',
                            'fulfilled_at', 'created_at', 'updated_at']


class SupplyRequestReviewSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=[('approved', 'Approved'), ('rejected', 'Rejected')])
    quantity_approved = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
