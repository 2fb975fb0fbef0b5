from rest_framework import serializers
from .models import Client
from .phone import normalize_phone, phone_validation_error, format_phone


class ClientSerializer(serializers.ModelSerializer):
    phone_display = serializers.SerializerMethodField()

    class Meta:
        model = Client
        fields = ['id', 'full_name', 'phone', 'phone_display', 'phone_secondary', 'address', 'city', 'zone',
                  'notes', 'segment', 'total_orders', 'total_spent', 'campaign_group', 'campaign_batch',
                  'created_at', 'updated_at']
        read_only_fields = ['total_orders', 'total_spent', 'created_at', 'updated_at']
        # Uniqueness is checked after normalization in validate_phone
        extra_kwargs = {'phone': {'validators': []}}

    def get_phone_display(self, obj):
        return format_phone(obj.phone)

    def validate_full_name(self, value):
        value = value.strip()
        if len(value) < 2:
            raise serializers.ValidationError("Name must contain at least 2 characters.")
        return value

    def validate_phone(self, value):
        error = phone_validation_error(value)
        if error:
            raise serializers.ValidationError(error)
        phone = normalize_phone(value)
        duplicates = Client.objects.filter(phone=phone)
        if self.instance:
            duplicates = duplicates.exclude(pk=self.instance.pk)
        if duplicates.exists():
            raise serializers.ValidationError("A client with this phone number already exists.")
        return phone

    def validate_phone_secondary(self, value):
        if not value:
            return ''
        error = phone_validation_error(value)
        if error:
            raise serializers.ValidationError(error)
        return normalize_phone(value)


class ClientImportSerializer(serializers.Serializer):
    """CSV passed either as an uploaded file or as raw text"""
    file = serializers.FileField(required=False)
    content = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    dry_run = serializers.BooleanField(default=False)
    campaign_group = serializers.CharField(required=False, allow_blank=True, default='', max_length=50)

    def validate(self, attrs):
        upload = attrs.pop('file', None)
        if upload is not None:
            try:
                attrs['content'] = upload.read().decode('utf-8-sig')
            except UnicodeDecodeError:
                raise serializers.ValidationError({'file': 'File must be UTF-8 encoded.'})
        if not attrs.get('content'):
            raise serializers.ValidationError({'file': 'Provide a CSV file or its content.'})
        return attrs


class RecipientEstimateSerializer(serializers.Serializer):
    selected = serializers.ListField(child=serializers.CharField(), allow_empty=True)
    excluded = serializers.ListField(child=serializers.CharField(), required=False, default=list)
