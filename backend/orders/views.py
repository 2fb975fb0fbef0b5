from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.core.paginator import Paginator
from django.db.models import Q
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.utils.dateparse import parse_date
from backend.core.permissions import IsSupervisor, IsCaller, has_role, is_supervisor, ROLE_CALLER, ROLE_SUPERVISOR
from backend.core.utils import create_audit_log
from .distribution import auto_distribute_orders
from .models import Order, Payment, FollowUp
from .serializers import (
    OrderSerializer, OrderListSerializer, OrderStatusSerializer, OrderAssignCallerSerializer,
    PaymentSerializer, FollowUpSerializer
)
from .services import (
    visible_orders, create_order, update_order_status, record_payment, update_payment_status,
    recalculate_client_stats
)

DELETABLE_STATUSES = ['pending', 'cancelled']


def _paginate(request, queryset, serializer_class):
    try:
        page = int(request.query_params.get('page', 1))
        limit = max(int(request.query_params.get('limit', 50)), 1)
    except ValueError:
        return Response({'error': 'page and limit must be integers.'}, status=status.HTTP_400_BAD_REQUEST)
    paginator = Paginator(queryset, limit)
    page_obj = paginator.get_page(page)
    return Response({
        'results': serializer_class(page_obj, many=True).data,
        'count': paginator.count,
        'next': page_obj.next_page_number() if page_obj.has_next() else None,
        'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
        'page': page_obj.number,
        'page_size': limit,
        'total_pages': paginator.num_pages,
    })


def _filter_by_dates(request, queryset, field='created_at'):
    date_from = parse_date(request.query_params.get('date_from', '') or '')
    if date_from:
        queryset = queryset.filter(**{f'{field}__date__gte': date_from})
    date_to = parse_date(request.query_params.get('date_to', '') or '')
    if date_to:
        queryset = queryset.filter(**{f'{field}__date__lte': date_to})
    return queryset


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def order_list_create(request):
    """List visible orders (paginated, filterable) or create an order"""
    if request.method == 'GET':
        queryset = visible_orders(request.user)
        status_filter = request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status__in=status_filter.split(','))
        for param in ('client', 'assigned_to', 'delivery_person', 'product'):
            value = request.query_params.get(param)
            if value:
                queryset = queryset.filter(**{f'{param}_id': value})
        if request.query_params.get('unassigned') == 'true':
            queryset = queryset.filter(assigned_to__isnull=True)
        search = request.query_params.get('search')
        if search:
            queryset = queryset.filter(
                Q(order_number__icontains=search) |
                Q(client__full_name__icontains=search) |
                Q(client_phone__icontains=search)
            )
        queryset = _filter_by_dates(request, queryset).order_by('-created_at')
        return _paginate(request, queryset, OrderListSerializer)

    if not has_role(request.user, ROLE_CALLER, ROLE_SUPERVISOR):
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    serializer = OrderSerializer(data=request.data)
    if serializer.is_valid():
        order = create_order(serializer.validated_data, user=request.user, request=request)
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def order_detail(request, pk):
    """Retrieve, update or delete an order"""
    order = get_object_or_404(visible_orders(request.user), pk=pk)

    if request.method == 'GET':
        return Response(OrderSerializer(order).data)

    elif request.method == 'PATCH':
        if not has_role(request.user, ROLE_CALLER, ROLE_SUPERVISOR):
            return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
        serializer = OrderSerializer(order, data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        if ('quantity' in data or 'unit_price' in data) and 'total_amount' not in data:
            data['total_amount'] = data.get('unit_price', order.unit_price) * data.get('quantity', order.quantity)
        changes = {
            field: {'old': str(getattr(order, field)), 'new': str(value)}
            for field, value in data.items()
            if getattr(order, field) != value
        }
        order = serializer.save()
        recalculate_client_stats(order.client)
        if changes:
            create_audit_log(
                request=request,
                action='update',
                model_name='Order',
                object_id=order.id,
                object_reference=order.order_number,
                changes=changes
            )
        return Response(OrderSerializer(order).data)

    if not is_supervisor(request.user):
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    if order.status not in DELETABLE_STATUSES:
        return Response(
            {'error': f"Only {' or '.join(DELETABLE_STATUSES)} orders can be deleted."},
            status=status.HTTP_400_BAD_REQUEST
        )
    client = order.client
    create_audit_log(
        request=request,
        action='delete',
        model_name='Order',
        object_id=order.id,
        object_reference=order.order_number,
    )
    order.delete()
    recalculate_client_stats(client)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def order_update_status(request, pk):
    """Change an order's status; cancel and report require a reason"""
    order = get_object_or_404(visible_orders(request.user), pk=pk)
    serializer = OrderStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    order = update_order_status(
        order,
        serializer.validated_data['status'],
        request.user,
        reason=serializer.validated_data.get('reason', ''),
        scheduled_at=serializer.validated_data.get('scheduled_at'),
        amount_paid=serializer.validated_data.get('amount_paid'),
        request=request,
    )
    return Response(OrderSerializer(order).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsSupervisor])
def order_assign_caller(request, pk):
    """Assign (or unassign with null) the caller in charge of an order"""
    order = get_object_or_404(Order, pk=pk)
    serializer = OrderAssignCallerSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    previous_id = order.assigned_to_id
    order.assigned_to = serializer.validated_data['assigned_to']
    order.save(update_fields=['assigned_to', 'updated_at'])
    create_audit_log(
        request=request,
        action='assign_caller',
        model_name='Order',
        object_id=order.id,
        object_reference=order.order_number,
        changes={'assigned_to': {'old': previous_id, 'new': order.assigned_to_id}}
    )
    return Response(OrderSerializer(order).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsSupervisor])
def order_auto_distribute(request):
    """Run the caller distribution now (still bound to distribution hours)"""
    return Response(auto_distribute_orders())


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def order_payments(request, pk):
    """Payments of an order, newest first, or record a new one"""
    order = get_object_or_404(visible_orders(request.user), pk=pk)

    if request.method == 'GET':
        return Response(PaymentSerializer(order.payments.select_related('created_by'), many=True).data)

    serializer = PaymentSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    payment = record_payment(
        order,
        serializer.validated_data['amount'],
        method=serializer.validated_data.get('method', 'cash'),
        status=serializer.validated_data.get('status', 'completed'),
        reference=serializer.validated_data.get('reference', ''),
        notes=serializer.validated_data.get('notes', ''),
        user=request.user,
        request=request,
    )
    return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsCaller])
def payment_list(request):
    """Payments on visible orders (method, status and date filters)"""
    queryset = Payment.objects.filter(
        order__in=visible_orders(request.user)
    ).select_related('order', 'created_by')
    for param in ('method', 'status'):
        value = request.query_params.get(param)
        if value:
            queryset = queryset.filter(**{param: value})
    queryset = _filter_by_dates(request, queryset)
    return _paginate(request, queryset, PaymentSerializer)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsSupervisor])
def payment_update_status(request, pk):
    """Change a payment's status; the order balance follows completed payments"""
    payment = get_object_or_404(Payment, pk=pk)
    payment = update_payment_status(payment, request.data.get('status'), user=request.user, request=request)
    return Response(PaymentSerializer(payment).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsCaller])
def pending_payments(request):
    """Visible orders with money still due"""
    queryset = (visible_orders(request.user)
                .filter(amount_due__gt=0)
                .exclude(status='cancelled')
                .order_by('-created_at'))
    return Response(OrderListSerializer(queryset, many=True).data)


def _visible_follow_ups(user):
    queryset = FollowUp.objects.select_related('client', 'order')
    if is_supervisor(user):
        return queryset
    return queryset.filter(Q(assigned_to=user) | Q(created_by=user) | Q(order__assigned_to=user))


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsCaller])
def follow_up_list_create(request):
    """List follow-ups (status, type, due filters) or schedule one"""
    if request.method == 'GET':
        queryset = _visible_follow_ups(request.user)
        for param in ('status', 'type', 'client', 'order'):
            value = request.query_params.get(param)
            if value:
                queryset = queryset.filter(**{param: value})
        if request.query_params.get('due') == 'true':
            queryset = queryset.filter(status='pending', scheduled_at__lte=timezone.now())
        return Response(FollowUpSerializer(queryset, many=True).data)

    serializer = FollowUpSerializer(data=request.data)
    if serializer.is_valid():
        follow_up = serializer.save(
            created_by=request.user,
            assigned_to=serializer.validated_data.get('assigned_to') or request.user,
        )
        return Response(FollowUpSerializer(follow_up).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsCaller])
def follow_up_detail(request, pk):
    follow_up = get_object_or_404(_visible_follow_ups(request.user), pk=pk)

    if request.method == 'GET':
        return Response(FollowUpSerializer(follow_up).data)
    elif request.method == 'PATCH':
        serializer = FollowUpSerializer(follow_up, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    follow_up.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsCaller])
def follow_up_complete(request, pk):
    """Mark a pending follow-up as done, optionally appending notes"""
    follow_up = get_object_or_404(_visible_follow_ups(request.user), pk=pk)
    if follow_up.status != 'pending':
        return Response({'error': 'Only pending follow-ups can be completed.'}, status=status.HTTP_400_BAD_REQUEST)

    follow_up.status = 'completed'
    follow_up.completed_at = timezone.now()
    notes = (request.data.get('notes') or '').strip()
    if notes:
        follow_up.notes = f"{follow_up.notes}\n{notes}".strip()
    follow_up.save()
    return Response(FollowUpSerializer(follow_up).data)
