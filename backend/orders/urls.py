from django.urls import path
from . import views

urlpatterns = [
    path('orders/', views.order_list_create, name='order-list-create'),
    path('orders/auto-distribute/', views.order_auto_distribute, name='order-auto-distribute'),
    path('orders/<int:pk>/', views.order_detail, name='order-detail'),
    path('orders/<int:pk>/status/', views.order_update_status, name='order-update-status'),
    path('orders/<int:pk>/assign-caller/', views.order_assign_caller, name='order-assign-caller'),
    path('orders/<int:pk>/payments/', views.order_payments, name='order-payments'),
    path('payments/', views.payment_list, name='payment-list'),
    path('payments/pending/', views.pending_payments, name='payment-pending'),
    path('payments/<int:pk>/status/', views.payment_update_status, name='payment-update-status'),
    path('follow-ups/', views.follow_up_list_create, name='follow-up-list-create'),
    path('follow-ups/<int:pk>/', views.follow_up_detail, name='follow-up-detail'),
    path('follow-ups/<int:pk>/complete/', views.follow_up_complete, name='follow-up-complete'),
]
