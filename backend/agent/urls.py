from django.urls import path
from . import views

urlpatterns = [
    path('agent/instructions/', views.instruction_list_create, name='agent-instruction-list-create'),
    path('agent/instructions/<int:pk>/', views.instruction_detail, name='agent-instruction-detail'),
]
