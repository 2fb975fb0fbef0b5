from django.urls import path
from . import views

urlpatterns = [
    path('stock/alerts/', views.stock_alert_list, name='stock-alert-list'),
    path('stock/alerts/<int:pk>/acknowledge/', views.stock_alert_acknowledge, name='stock-alert-acknowledge'),
    path('stock/thresholds/', views.stock_threshold_list_upsert, name='stock-threshold-list-upsert'),
    path('stock/movements/', views.stock_movement_list, name='stock-movement-list'),
    path('stock/transfer/', views.stock_transfer, name='stock-transfer'),
    path('supply-requests/', views.supply_request_list_create, name='supply-request-list-create'),
    path('supply-requests/<int:pk>/review/', views.supply_request_review, name='supply-request-review'),
    path('supply-requests/<int:pk>/fulfill/', views.supply_request_fulfill, name='supply-request-fulfill'),
    path('supply-requests/<int:pk>/cancel/', views.supply_request_cancel, name='supply-request-cancel'),
]
