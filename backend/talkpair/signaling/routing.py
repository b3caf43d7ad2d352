# talkpair/signaling/routing.py
from django.urls import re_path
from .consumers import CallConsumer


def websocket_urlpatterns(coordinator):
    return [
        re_path(r"^ws/calls/?$", CallConsumer.as_asgi(coordinator=coordinator)),
    ]
