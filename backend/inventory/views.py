from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404
from backend.catalog.models import Product
from backend.core.permissions import IsSupervisor, is_supervisor
from backend.delivery.models import DeliveryPerson
from .models import StockThreshold, StockAlert, StockMovement, SupplyRequest
from .serializers import (
    StockThresholdSerializer, StockAlertSerializer, StockMovementSerializer, StockTransferSerializer,
    SupplyRequestSerializer, SupplyRequestReviewSerializer
)
from .services import (
    StockError, open_alerts, acknowledge_alert, upsert_threshold, transfer_stock_to_delivery,
    transfer_stock_from_delivery, create_supply_request, review_supply_request, fulfill_supply_request,
    cancel_supply_request
)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsSupervisor])
def stock_alert_list(request):
    """Unacknowledged alerts, critical first; ``alert_type`` filters the location"""
    alerts = list(open_alerts(request.query_params.get('alert_type')))
    return Response({
        'results': StockAlertSerializer(alerts, many=True).data,
        'critical_count': sum(1 for alert in alerts if alert.severity == 'critical'),
        'warning_count': sum(1 for alert in alerts if alert.severity == 'warning'),
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsSupervisor])
def stock_alert_acknowledge(request, pk):
    alert = get_object_or_404(StockAlert, pk=pk)
    if alert.is_acknowledged:
        return Response({'error': 'Alert is already acknowledged.'}, status=status.HTTP_400_BAD_REQUEST)
    return Response(StockAlertSerializer(acknowledge_alert(alert, request.user)).data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsSupervisor])
def stock_threshold_list_upsert(request):
    """List thresholds or create/replace the one for a product and location type"""
    if request.method == 'GET':
        queryset = StockThreshold.objects.select_related('product')
        product_id = request.query_params.get('product')
        if product_id:
            queryset = queryset.filter(product_id=product_id)
        return Response(StockThresholdSerializer(queryset, many=True).data)

    serializer = StockThresholdSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    threshold = upsert_threshold(
        serializer.validated_data['product'],
        serializer.validated_data['location_type'],
        serializer.validated_data['warning_threshold'],
        serializer.validated_data['critical_threshold'],
    )
    return Response(StockThresholdSerializer(threshold).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsSupervisor])
def stock_movement_list(request):
    """Stock history, newest first (product, delivery_person, movement_type filters)"""
    queryset = StockMovement.objects.select_related('product', 'performed_by')
    for param in ('product', 'delivery_person', 'movement_type'):
        value = request.query_params.get(param)
        if value:
            queryset = queryset.filter(**{param: value})
    return Response(StockMovementSerializer(queryset[:500], many=True).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsSupervisor])
def stock_transfer(request):
    """Move stock between the warehouse and a delivery agent"""
    serializer = StockTransferSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    product = get_object_or_404(Product, pk=serializer.validated_data['product'])
    delivery_person = get_object_or_404(DeliveryPerson, pk=serializer.validated_data['delivery_person'])
    transfer = (transfer_stock_to_delivery if serializer.validated_data['direction'] == 'to_delivery'
                else transfer_stock_from_delivery)
    try:
        item = transfer(
            product, delivery_person, serializer.validated_data['quantity'],
            user=request.user, reason=serializer.validated_data['reason']
        )
    except StockError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    product.refresh_from_db()
    return Response({
        'product': product.id,
        'warehouse_stock': product.stock,
        'delivery_person': delivery_person.id,
        'delivery_stock': item.quantity,
    })


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def supply_request_list_create(request):
    """Supervisors see every request, others their own"""
    if request.method == 'GET':
        queryset = SupplyRequest.objects.select_related('product', 'requested_by', 'delivery_person__user')
        if not is_supervisor(request.user):
            queryset = queryset.filter(requested_by=request.user)
        for param in ('requester_type', 'status'):
            value = request.query_params.get(param)
            if value:
                queryset = queryset.filter(**{param: value})
        return Response(SupplyRequestSerializer(queryset, many=True).data)

    serializer = SupplyRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    delivery_person = serializer.validated_data.get('delivery_person')
    if delivery_person is not None and not is_supervisor(request.user) and delivery_person.user_id != request.user.id:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    supply_request = create_supply_request(
        serializer.validated_data['product'],
        request.user,
        serializer.validated_data['requester_type'],
        serializer.validated_data['quantity_requested'],
        reason=serializer.validated_data.get('reason', ''),
        delivery_person=delivery_person,
    )
    return Response(SupplyRequestSerializer(supply_request).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsSupervisor])
def supply_request_review(request, pk):
    supply_request = get_object_or_404(SupplyRequest, pk=pk)
    serializer = SupplyRequestReviewSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    supply_request = review_supply_request(
        supply_request,
        serializer.validated_data['decision'],
        request.user,
        quantity_approved=serializer.validated_data.get('quantity_approved'),
        notes=serializer.validated_data['notes'],
        request=request,
    )
    return Response(SupplyRequestSerializer(supply_request).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsSupervisor])
def supply_request_fulfill(request, pk):
    supply_request = get_object_or_404(SupplyRequest, pk=pk)
    try:
        supply_request = fulfill_supply_request(supply_request, request.user)
    except StockError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response(SupplyRequestSerializer(supply_request).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def supply_request_cancel(request, pk):
    supply_request = get_object_or_404(SupplyRequest, pk=pk)
    supply_request = cancel_supply_request(supply_request, request.user)
    return Response(SupplyRequestSerializer(supply_request).data)
