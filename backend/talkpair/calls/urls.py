# talkpair/calls/urls.py
from django.urls import path
from .views import CallDetailView, CallFeedbackView, CallHistoryView

urlpatterns = [
    path("history", CallHistoryView.as_view()),
    path("history/", CallHistoryView.as_view()),
    path("<uuid:call_id>", CallDetailView.as_view()),
    path("<uuid:call_id>/", CallDetailView.as_view()),
    path("<uuid:call_id>/feedback", CallFeedbackView.as_view()),
    path("<uuid:call_id>/feedback/", CallFeedbackView.as_view()),
]
