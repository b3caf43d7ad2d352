# talkpair/config/urls.py
from django.contrib import admin
from django.urls import path, include


urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/auth/", include("talkpair.authentication.urls")),
    path("api/users/", include("talkpair.users.urls")),
    path("api/calls/", include("talkpair.calls.urls")),
]
