from django.urls import path
from .views import TaskListCreateView, TaskDetailView

urlpatterns = [
    # Task endpoints
    path('', TaskListCreateView.as_view(), name='task-list-create'),
    path('<int:pk>/', TaskDetailView.as_view(), name='task-detail'),
]
