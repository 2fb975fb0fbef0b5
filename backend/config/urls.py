"""
URL configuration for the operations backend.

Every app mounts its endpoints under /api/v1/.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "Operations CRM Admin Panel"
admin.site.site_title = "Operations CRM Admin Portal"
admin.site.index_title = "Call center, dispatch and stock administration"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('backend.core.urls')),
    path('api/v1/', include('backend.catalog.urls')),
    path('api/v1/', include('backend.clients.urls')),
    path('api/v1/', include('backend.delivery.urls')),
    path('api/v1/', include('backend.orders.urls')),
    path('api/v1/', include('backend.inventory.urls')),
    path('api/v1/', include('backend.integrations.urls')),
    path('api/v1/', include('backend.agent.urls')),
    path('api/v1/', include('backend.reports.urls')),
]
