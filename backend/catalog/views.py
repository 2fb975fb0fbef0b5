from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404
from backend.core.permissions import IsSupervisor, is_supervisor
from backend.core.utils import create_audit_log
from backend.inventory.services import adjust_warehouse_stock, StockError
from .filters import ProductFilter
from .models import Product
from .serializers import ProductSerializer, StockAdjustmentSerializer

TRACKED_FIELDS = ['name', 'price', 'is_active']


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def product_list_create(request):
    """List products (filterable) or create a product"""
    if request.method == 'GET':
        filterset = ProductFilter(request.query_params, queryset=Product.objects.all())
        serializer = ProductSerializer(filterset.qs, many=True)
        return Response(serializer.data)

    if not is_supervisor(request.user):
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    serializer = ProductSerializer(data=request.data)
    if serializer.is_valid():
        product = serializer.save()
        create_audit_log(
            request=request,
            action='create',
            model_name='Product',
            object_id=product.id,
            object_name=product.name,
            changes={'price': str(product.price), 'stock': product.stock}
        )
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    product = get_object_or_404(Product, pk=pk)

    if request.method == 'GET':
        return Response(ProductSerializer(product).data)

    if not is_supervisor(request.user):
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    if request.method == 'PATCH':
        # Stock only moves through adjust-stock so every change is recorded
        data = request.data.copy()
        data.pop('stock', None)
        serializer = ProductSerializer(product, data=data, partial=True)
        if serializer.is_valid():
            old_data = {field: str(getattr(product, field)) for field in TRACKED_FIELDS}
            serializer.save()
            new_data = {field: str(getattr(product, field)) for field in TRACKED_FIELDS}
            changes = {k: {'old': old_data[k], 'new': new_data[k]} for k in old_data if old_data[k] != new_data[k]}
            if changes:
                create_audit_log(
                    request=request,
                    action='update',
                    model_name='Product',
                    object_id=product.id,
                    object_name=product.name,
                    changes=changes
                )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    # DELETE: products referenced by orders are deactivated instead
    if product.orders.exists():
        product.is_active = False
        product.save(update_fields=['is_active', 'updated_at'])
        return Response(ProductSerializer(product).data)
    product_id = product.id
    product_name = product.name
    product.delete()
    create_audit_log(
        request=request,
        action='delete',
        model_name='Product',
        object_id=product_id,
        object_name=product_name,
    )
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsSupervisor])
def product_adjust_stock(request, pk):
    """Apply a signed stock change; the quantity never drops below zero"""
    product = get_object_or_404(Product, pk=pk)
    serializer = StockAdjustmentSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    old_stock = product.stock
    try:
        product = adjust_warehouse_stock(
            product,
            serializer.validated_data['quantity'],
            reason=serializer.validated_data.get('reason', ''),
            user=request.user,
        )
    except StockError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    create_audit_log(
        request=request,
        action='stock_adjust',
        model_name='Product',
        object_id=product.id,
        object_name=product.name,
        changes={'stock': {'old': old_stock, 'new': product.stock}}
    )
    return Response(ProductSerializer(product).data)
