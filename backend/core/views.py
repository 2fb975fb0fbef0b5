from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError, AuthenticationFailed
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.exceptions import ObjectDoesNotExist
from django.shortcuts import get_object_or_404
from django.conf import settings
from django.db import DatabaseError, connection, transaction
from django.db.models import Q
from django.utils import timezone
import logging

from .models import RoleRequest, UserPresence, Schedule, AuditLog
from .permissions import IsSupervisor, IsAdmin, ROLE_SLUGS, is_supervisor, primary_role
from .serializers import (
    UserSerializer, UserCreateSerializer, RoleRequestSerializer, RoleRequestReviewSerializer,
    UserPresenceSerializer, ScheduleSerializer, AuditLogSerializer, serialize_me
)
from .utils import create_audit_log, get_online_presences

User = get_user_model()
logger = logging.getLogger(__name__)

STARTED_AT = timezone.now()


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        if not self.user.is_active:
            raise AuthenticationFailed('User account is disabled.')
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['groups'] = list(user.groups.values_list('name', flat=True))
        return token


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Token refresh that reports deleted users as an invalid token"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except (ObjectDoesNotExist, User.DoesNotExist):
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    serializer_class = CustomTokenRefreshSerializer


@api_view(['POST'])
@permission_classes([AllowAny])
def register(request):
    """User registration endpoint; new accounts have no role until a request is approved"""
    serializer = UserCreateSerializer(data=request.data)
    if serializer.is_valid():
        user = serializer.save()
        token = CustomTokenObtainPairSerializer.get_token(user)
        return Response({
            'user': UserSerializer(user).data,
            'access': str(token.access_token),
            'refresh': str(token),
        }, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Current user with groups and primary role"""
    return Response(serialize_me(request.user))


# User views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdmin])
def user_list_create(request):
    """List all users or create a new user"""
    if request.method == 'GET':
        users = User.objects.all().prefetch_related('groups').order_by('username')
        role = request.query_params.get('role')
        if role:
            users = users.filter(groups__name=role)
        serializer = UserSerializer(users, many=True)
        return Response(serializer.data)
    else:
        serializer = UserCreateSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()
            return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdmin])
def user_detail(request, pk):
    """Retrieve, update or deactivate a user"""
    user = get_object_or_404(User, pk=pk)

    if request.method == 'GET':
        return Response(UserSerializer(user).data)
    elif request.method == 'PATCH':
        serializer = UserSerializer(user, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        # Users own orders and audit history, so they are deactivated instead
        user.is_active = False
        user.save(update_fields=['is_active'])
        return Response(status=status.HTTP_204_NO_CONTENT)


# Role request views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def role_request_list_create(request):
    """Supervisors see every request, other users only their own"""
    if request.method == 'GET':
        queryset = RoleRequest.objects.select_related('user', 'reviewed_by')
        if not is_supervisor(request.user):
            queryset = queryset.filter(user=request.user)
        status_filter = request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        serializer = RoleRequestSerializer(queryset, many=True)
        return Response(serializer.data)

    serializer = RoleRequestSerializer(data=request.data, context={'request': request})
    if serializer.is_valid():
        role_request = serializer.save(user=request.user)
        logger.info(f"Role request {role_request.id}: {request.user.username} asked for {role_request.role}")
        return Response(RoleRequestSerializer(role_request).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsSupervisor])
def role_request_review(request, pk):
    """Approve (adds the user to the role group) or reject a pending request"""
    role_request = get_object_or_404(RoleRequest, pk=pk)
    if role_request.status != 'pending':
        return Response({'error': f'Request already {role_request.status}.'}, status=status.HTTP_400_BAD_REQUEST)

    serializer = RoleRequestReviewSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    decision = serializer.validated_data['decision']
    with transaction.atomic():
        role_request.status = decision
        role_request.reviewed_by = request.user
        role_request.reviewed_at = timezone.now()
        role_request.review_notes = serializer.validated_data.get('review_notes', '')
        role_request.save()
        if decision == 'approved':
            group, _ = Group.objects.get_or_create(name=role_request.role)
            role_request.user.groups.add(group)

    create_audit_log(
        request=request,
        action='role_review',
        model_name='RoleRequest',
        object_id=role_request.id,
        object_name=role_request.user.username,
        changes={'role': role_request.role, 'decision': decision}
    )
    return Response(RoleRequestSerializer(role_request).data)


# Presence views
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def presence_heartbeat(request):
    """Record that the current user is active"""
    role = primary_role(request.user)
    presence, _ = UserPresence.objects.update_or_create(
        user=request.user,
        defaults={'last_seen_at': timezone.now(), 'role': ROLE_SLUGS.get(role, '')}
    )
    return Response(UserPresenceSerializer(presence).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def presence_online(request):
    """Users seen within the online threshold"""
    presences = get_online_presences(role=request.query_params.get('role'))
    return Response(UserPresenceSerializer(presences, many=True).data)


# Schedule views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def schedule_list_create(request):
    if request.method == 'GET':
        queryset = Schedule.objects.select_related('user')
        if not is_supervisor(request.user):
            queryset = queryset.filter(user=request.user)
        user_id = request.query_params.get('user')
        if user_id:
            queryset = queryset.filter(user_id=user_id)
        date_from = request.query_params.get('date_from')
        date_to = request.query_params.get('date_to')
        if date_from:
            queryset = queryset.filter(date__gte=date_from)
        if date_to:
            queryset = queryset.filter(date__lte=date_to)
        return Response(ScheduleSerializer(queryset, many=True).data)

    if not is_supervisor(request.user):
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    serializer = ScheduleSerializer(data=request.data)
    if serializer.is_valid():
        serializer.save(created_by=request.user)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def schedule_detail(request, pk):
    schedule = get_object_or_404(Schedule, pk=pk)
    if not is_supervisor(request.user) and schedule.user_id != request.user.id:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    if request.method == 'GET':
        return Response(ScheduleSerializer(schedule).data)

    if not is_supervisor(request.user):
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    if request.method == 'PATCH':
        serializer = ScheduleSerializer(schedule, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    schedule.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)


# AuditLog views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdmin])
def audit_log_list(request):
    """List audit logs with filtering"""
    queryset = AuditLog.objects.select_related('user')

    action_filter = request.query_params.get('action', None)
    if action_filter:
        queryset = queryset.filter(action=action_filter)

    model_filter = request.query_params.get('model', None)
    if model_filter:
        queryset = queryset.filter(model_name=model_filter)

    date_from = request.query_params.get('date_from', None)
    date_to = request.query_params.get('date_to', None)
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    queryset = queryset.order_by('-created_at')[:500]
    serializer = AuditLogSerializer(queryset, many=True)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def global_search(request):
    """Search clients, orders and products"""
    query = request.query_params.get('q', '').strip()

    if not query:
        return Response({'clients': [], 'orders': [], 'products': []})

    from backend.catalog.filters import ProductFilter
    from backend.catalog.models import Product
    from backend.catalog.serializers import ProductSerializer
    from backend.clients.models import Client
    from backend.clients.serializers import ClientSerializer
    from backend.orders.serializers import OrderListSerializer
    from backend.orders.services import visible_orders

    results = {}

    clients = Client.objects.filter(
        Q(full_name__icontains=query) |
        Q(phone__icontains=query) |
        Q(phone_secondary__icontains=query) |
        Q(city__icontains=query)
    )[:20]
    results['clients'] = ClientSerializer(clients, many=True).data

    orders = visible_orders(request.user).filter(
        Q(order_number__icontains=query) |
        Q(client__full_name__icontains=query) |
        Q(client_phone__icontains=query)
    )[:20]
    results['orders'] = OrderListSerializer(orders, many=True).data

    products = ProductFilter({'search': query}, queryset=Product.objects.all()).qs[:20]
    results['products'] = ProductSerializer(products, many=True).data

    return Response(results)


@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def health_check(request):
    """Liveness check for monitors and load balancers; 503 when the database is unreachable"""
    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
            cursor.fetchone()
        database_ok = True
    except DatabaseError as e:
        logger.error(f"Health check database query failed: {str(e)}")
        database_ok = False

    now = timezone.now()
    return Response({
        'status': 'healthy' if database_ok else 'unhealthy',
        'timestamp': now.isoformat(),
        'version': settings.APP_VERSION,
        'checks': {'database': database_ok, 'api': True},
        'uptime': int((now - STARTED_AT).total_seconds()),
        'environment': settings.ENVIRONMENT,
    }, status=status.HTTP_200_OK if database_ok else status.HTTP_503_SERVICE_UNAVAILABLE)
