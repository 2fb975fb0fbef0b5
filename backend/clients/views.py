import csv
import io

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q
from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from backend.core.permissions import IsSupervisor, IsCaller, is_supervisor
from backend.core.utils import create_audit_log
from .csv_import import import_clients
from .models import Client
from .segmentation import get_segments, get_clients_for_segment, estimate_recipients
from .serializers import ClientSerializer, ClientImportSerializer, RecipientEstimateSerializer


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsCaller])
def client_list_create(request):
    """List clients (search, segment, city, zone, campaign_group filters) or create one"""
    if request.method == 'GET':
        queryset = Client.objects.all()
        search = request.query_params.get('search')
        if search:
            queryset = queryset.filter(
                Q(full_name__icontains=search) | Q(phone__icontains=search) | Q(phone_secondary__icontains=search)
            )
        for param in ('segment', 'city', 'zone', 'campaign_group'):
            value = request.query_params.get(param)
            if value:
                queryset = queryset.filter(**{param: value})
        serializer = ClientSerializer(queryset, many=True)
        return Response(serializer.data)

    serializer = ClientSerializer(data=request.data)
    if serializer.is_valid():
        client = serializer.save()
        create_audit_log(
            request=request,
            action='create',
            model_name='Client',
            object_id=client.id,
            object_name=client.full_name,
            object_reference=client.phone,
        )
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsCaller])
def client_detail(request, pk):
    """Retrieve, update or delete a client"""
    client = get_object_or_404(Client, pk=pk)

    if request.method == 'GET':
        return Response(ClientSerializer(client).data)
    elif request.method == 'PATCH':
        serializer = ClientSerializer(client, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    if not is_supervisor(request.user):
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    if client.orders.exists():
        return Response({'error': 'Client has orders and cannot be deleted.'}, status=status.HTTP_400_BAD_REQUEST)
    client.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsCaller])
def client_orders(request, pk):
    """Order history of a client, newest first"""
    from backend.orders.serializers import OrderListSerializer

    client = get_object_or_404(Client, pk=pk)
    orders = client.orders.select_related('product', 'assigned_to', 'delivery_person__user').order_by('-created_at')
    return Response({
        'client': ClientSerializer(client).data,
        'orders': OrderListSerializer(orders, many=True).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsSupervisor])
def client_import(request):
    """Import clients from CSV; ``dry_run`` returns the preview without saving"""
    serializer = ClientImportSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    summary = import_clients(
        serializer.validated_data['content'],
        dry_run=serializer.validated_data['dry_run'],
        campaign_group=serializer.validated_data.get('campaign_group', ''),
    )
    if summary['created']:
        create_audit_log(
            request=request,
            action='import',
            model_name='Client',
            object_id='bulk',
            changes={'created': summary['created'], 'existing': summary['existing'],
                     'invalid': len(summary['invalid'])}
        )
    return Response(summary, status=status.HTTP_200_OK if summary['dry_run'] else status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsSupervisor])
def segment_list(request):
    """All campaign segments with member counts"""
    segments = get_segments()
    category = request.query_params.get('category')
    if category:
        segments = [segment for segment in segments if segment['category'] == category]
    return Response(segments)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsSupervisor])
def segment_clients(request, segment_id):
    """Members of one segment; ``?export=csv`` downloads them"""
    clients = get_clients_for_segment(segment_id)

    if request.query_params.get('export') == 'csv':
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(['id', 'full_name', 'phone'])
        for client in clients:
            writer.writerow([client['id'], client['full_name'], client['phone']])
        response = HttpResponse(buffer.getvalue(), content_type='text/csv; charset=utf-8')
        filename = segment_id.replace(':', '_')
        response['Content-Disposition'] = f'attachment; filename="segment_{filename}.csv"'
        return response

    return Response({'segment_id': segment_id, 'count': len(clients), 'clients': clients})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsSupervisor])
def segment_recipients(request):
    """Approximate recipient count for a segment selection"""
    serializer = RecipientEstimateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    total = estimate_recipients(serializer.validated_data['selected'], serializer.validated_data['excluded'])
    return Response({'total_recipients': total})
