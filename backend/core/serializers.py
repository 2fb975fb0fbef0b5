from rest_framework import serializers
from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from .models import RoleRequest, UserPresence, Schedule, AuditLog
from .permissions import APPLICATION_ROLES, get_user_roles, primary_role

User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    full_name = serializers.SerializerMethodField()
    roles = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'full_name', 'roles',
                  'is_active', 'is_staff', 'is_superuser', 'date_joined']
        read_only_fields = ['date_joined', 'is_superuser']

    def get_full_name(self, obj):
        return obj.get_full_name() or obj.username

    def get_roles(self, obj):
        return get_user_roles(obj)


class UserCreateSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, validators=[validate_password])
    password_confirm = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ['username', 'email', 'password', 'password_confirm', 'first_name', 'last_name']

    def validate(self, attrs):
        if attrs['password'] != attrs['password_confirm']:
            raise serializers.ValidationError({"password": "Passwords don't match"})
        return attrs

    def create(self, validated_data):
        validated_data.pop('password_confirm')
        password = validated_data.pop('password')
        user = User.objects.create(**validated_data, is_active=True)
        user.set_password(password)
        user.save()
        return user


class RoleRequestSerializer(serializers.ModelSerializer):
    user = UserSerializer(read_only=True)
    reviewed_by_name = serializers.CharField(source='reviewed_by.username', read_only=True, allow_null=True)

    class Meta:
        model = RoleRequest
        fields = ['id', 'user', 'role', 'reason', 'status', 'reviewed_by', 'reviewed_by_name',
                  'reviewed_at', 'review_notes', 'created_at']
        read_only_fields = ['status', 'reviewed_by', 'reviewed_at', 'review_notes', 'created_at']

    def validate_role(self, value):
        if value not in APPLICATION_ROLES:
            raise serializers.ValidationError(f"Unknown role. Valid roles: {', '.join(APPLICATION_ROLES)}")
        return value

    def validate(self, attrs):
        user = self.context['request'].user
        role = attrs.get('role')
        if role in get_user_roles(user):
            raise serializers.ValidationError({'role': 'You already have this role.'})
        if RoleRequest.objects.filter(user=user, role=role, status='pending').exists():
            raise serializers.ValidationError({'role': 'A pending request for this role already exists.'})
        return attrs


class RoleRequestReviewSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=['approved', 'rejected'])
    review_notes = serializers.CharField(required=False, allow_blank=True)


class UserPresenceSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source='user.username', read_only=True)
    full_name = serializers.SerializerMethodField()

    class Meta:
        model = UserPresence
        fields = ['user', 'username', 'full_name', 'role', 'last_seen_at']

    def get_full_name(self, obj):
        return obj.user.get_full_name() or obj.user.username


class ScheduleSerializer(serializers.ModelSerializer):
    user_name = serializers.CharField(source='user.username', read_only=True)

    class Meta:
        model = Schedule
        fields = ['id', 'user', 'user_name', 'date', 'start_time', 'end_time', 'shift_type', 'zone',
                  'status', 'notes', 'created_by', 'created_at', 'updated_at']
        read_only_fields = ['created_by', 'created_at', 'updated_at']

    def validate(self, attrs):
        start_time = attrs.get('start_time', getattr(self.instance, 'start_time', None))
        end_time = attrs.get('end_time', getattr(self.instance, 'end_time', None))
        if start_time and end_time and end_time <= start_time:
            raise serializers.ValidationError({'end_time': 'End time must be after start time.'})
        return attrs


class AuditLogSerializer(serializers.ModelSerializer):
    user = UserSerializer(read_only=True)

    class Meta:
        model = AuditLog
        fields = ['id', 'user', 'action', 'model_name', 'object_id', 'object_name',
                  'object_reference', 'changes', 'ip_address', 'created_at']


def serialize_me(user):
    """Current user payload with roles and the primary role"""
    data = UserSerializer(user).data
    data['groups'] = list(user.groups.values_list('name', flat=True))
    data['primary_role'] = primary_role(user)
    return data
