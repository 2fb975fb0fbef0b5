from django.urls import path
from . import views

urlpatterns = [
    path('reports/dashboard/', views.dashboard_summary, name='dashboard-summary'),
    path('reports/callers/', views.caller_performance, name='caller-performance'),
    path('reports/delivery/', views.delivery_performance, name='delivery-performance'),
]
