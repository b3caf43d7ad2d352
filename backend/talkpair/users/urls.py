# talkpair/users/urls.py
from django.urls import path
from .views import MeStatsView, MeView

urlpatterns = [
    path("me/", MeView.as_view()),  # GET /api/users/me/
    path("me", MeView.as_view()),  # GET /api/users/me
    path("me/stats/", MeStatsView.as_view()),  # GET /api/users/me/stats/
    path("me/stats", MeStatsView.as_view()),  # GET /api/users/me/stats
]
