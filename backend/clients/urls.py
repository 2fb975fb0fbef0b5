from django.urls import path
from .views import (
    client_list_create, client_detail, client_orders, client_import,
    segment_list, segment_clients, segment_recipients
)

urlpatterns = [
    path('clients/', client_list_create, name='client-list-create'),
    path('clients/import/', client_import, name='client-import'),
    path('clients/<int:pk>/', client_detail, name='client-detail'),
    path('clients/<int:pk>/orders/', client_orders, name='client-orders'),

    # Campaign segments
    path('segments/', segment_list, name='segment-list'),
    path('segments/recipients/', segment_recipients, name='segment-recipients'),
    path('segments/<str:segment_id>/clients/', segment_clients, name='segment-clients'),
]
