# teams/urls.py
from django.urls import path
from .views import (
    TeamListCreateView,
    TeamDetailView,
    TeamMembershipListView,
    TeamMembershipDetailView,
)

urlpatterns = [
    # Team URLs
    path('', TeamListCreateView.as_view(), name='team-list-create'),
    path('<int:pk>/', TeamDetailView.as_view(), name='team-detail'),

    # Team Membership URLs
    path('<int:team_id>/members/', TeamMembershipListView.as_view(), name='team-membership-list'),
    path('<int:team_id>/members/<int:user_id>/', TeamMembershipDetailView.as_view(), name='team-membership-detail'),
]
