from django.urls import path
from . import views

urlpatterns = [
    path('webhook/orders/', views.webhook_orders, name='webhook-orders'),
    path('integrations/orders/<int:pk>/sync/', views.order_sync, name='order-sync'),
    path('embed/order-form/', views.embed_order_form, name='embed-order-form'),
]
