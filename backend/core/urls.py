from django.urls import path
from .views import (
    CustomTokenObtainPairView, CustomTokenRefreshView, register, user_me,
    user_list_create, user_detail,
    role_request_list_create, role_request_review,
    presence_heartbeat, presence_online,
    schedule_list_create, schedule_detail,
    audit_log_list, global_search, health_check
)

urlpatterns = [
    # Auth endpoints
    path('auth/register/', register, name='register'),
    path('auth/login/', CustomTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/refresh/', CustomTokenRefreshView.as_view(), name='token_refresh'),
    path('auth/me/', user_me, name='user-me'),

    # User endpoints
    path('users/', user_list_create, name='user-list-create'),
    path('users/<int:pk>/', user_detail, name='user-detail'),

    # Role requests
    path('role-requests/', role_request_list_create, name='role-request-list-create'),
    path('role-requests/<int:pk>/review/', role_request_review, name='role-request-review'),

    # Presence
    path('presence/heartbeat/', presence_heartbeat, name='presence-heartbeat'),
    path('presence/online/', presence_online, name='presence-online'),

    # Schedules
    path('schedules/', schedule_list_create, name='schedule-list-create'),
    path('schedules/<int:pk>/', schedule_detail, name='schedule-detail'),

    # AuditLog endpoints
    path('audit-logs/', audit_log_list, name='audit-log-list'),

    # Health check
    path('health/', health_check, name='health-check'),

    # Global search endpoint
    path('search/', global_search, name='global-search'),
]
