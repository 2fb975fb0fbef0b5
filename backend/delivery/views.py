from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404
from backend.core.permissions import IsSupervisor, IsDelivery
from .dispatch import dispatch_queue, dispatch_candidates, assign_delivery_person
from .models import DeliveryPerson, DeliveryPersonStock
from .serializers import (
    DeliveryPersonSerializer, DeliveryStatusSerializer,
    DeliveryPersonStockSerializer, DispatchAssignSerializer
)


def _profile_or_404(user):
    return get_object_or_404(DeliveryPerson.objects.select_related('user'), user=user)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsSupervisor])
def delivery_person_list_create(request):
    """List delivery agents or create a profile for a user"""
    if request.method == 'GET':
        queryset = DeliveryPerson.objects.select_related('user')
        status_filter = request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        zone = request.query_params.get('zone')
        if zone:
            queryset = queryset.filter(zone__iexact=zone)
        return Response(DeliveryPersonSerializer(queryset, many=True).data)

    serializer = DeliveryPersonSerializer(data=request.data)
    if serializer.is_valid():
        serializer.save()
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated, IsSupervisor])
def delivery_person_detail(request, pk):
    delivery_person = get_object_or_404(DeliveryPerson, pk=pk)
    if request.method == 'GET':
        return Response(DeliveryPersonSerializer(delivery_person).data)

    serializer = DeliveryPersonSerializer(delivery_person, data=request.data, partial=True)
    if serializer.is_valid():
        serializer.save()
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsSupervisor])
def delivery_person_stock(request, pk):
    delivery_person = get_object_or_404(DeliveryPerson, pk=pk)
    items = DeliveryPersonStock.objects.filter(delivery_person=delivery_person).select_related('product')
    return Response(DeliveryPersonStockSerializer(items, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDelivery])
def my_delivery_profile(request):
    return Response(DeliveryPersonSerializer(_profile_or_404(request.user)).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDelivery])
def my_delivery_status(request):
    """Delivery agent switches between available, busy and offline"""
    delivery_person = _profile_or_404(request.user)
    serializer = DeliveryStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    delivery_person.status = serializer.validated_data['status']
    delivery_person.save(update_fields=['status', 'updated_at'])
    return Response(DeliveryPersonSerializer(delivery_person).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDelivery])
def my_delivery_stock(request):
    delivery_person = _profile_or_404(request.user)
    items = DeliveryPersonStock.objects.filter(delivery_person=delivery_person).select_related('product')
    return Response(DeliveryPersonStockSerializer(items, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsSupervisor])
def dispatch_board(request):
    """Confirmed orders awaiting an agent and the ranked candidates"""
    from backend.orders.serializers import OrderListSerializer

    return Response({
        'orders': OrderListSerializer(dispatch_queue(), many=True).data,
        'candidates': DeliveryPersonSerializer(dispatch_candidates(request.query_params.get('zone')), many=True).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsSupervisor])
def dispatch_assign(request):
    from backend.orders.models import Order
    from backend.orders.serializers import OrderSerializer

    serializer = DispatchAssignSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    order = get_object_or_404(Order, pk=serializer.validated_data['order_id'])
    delivery_person = get_object_or_404(DeliveryPerson, pk=serializer.validated_data['delivery_person_id'])
    if not delivery_person.is_active:
        return Response({'error': 'Delivery person is inactive.'}, status=status.HTTP_400_BAD_REQUEST)

    assign_delivery_person(order, delivery_person, request=request)
    order.refresh_from_db()
    return Response(OrderSerializer(order).data)
