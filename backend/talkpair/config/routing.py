# talkpair/config/routing.py
from channels.routing import ProtocolTypeRouter, URLRouter

from talkpair.config.jwt_auth_middleware import JwtAuthMiddlewareStack
from talkpair.signaling.routing import websocket_urlpatterns


def build_application(coordinator, http_app=None):
    routes = {
        "websocket": JwtAuthMiddlewareStack(URLRouter(websocket_urlpatterns(coordinator))),
    }
    if http_app is not None:
        routes["http"] = http_app
    return ProtocolTypeRouter(routes)
