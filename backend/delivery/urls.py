from django.urls import path
from .views import (
    delivery_person_list_create, delivery_person_detail, delivery_person_stock,
    my_delivery_profile, my_delivery_status, my_delivery_stock,
    dispatch_board, dispatch_assign
)

urlpatterns = [
    path('delivery-persons/', delivery_person_list_create, name='delivery-person-list-create'),
    path('delivery-persons/<int:pk>/', delivery_person_detail, name='delivery-person-detail'),
    path('delivery-persons/<int:pk>/stock/', delivery_person_stock, name='delivery-person-stock'),

    # Current delivery agent
    path('delivery/me/', my_delivery_profile, name='my-delivery-profile'),
    path('delivery/me/status/', my_delivery_status, name='my-delivery-status'),
    path('delivery/me/stock/', my_delivery_stock, name='my-delivery-stock'),

    # Supervisor dispatch board
    path('dispatch/', dispatch_board, name='dispatch-board'),
    path('dispatch/assign/', dispatch_assign, name='dispatch-assign'),
]
