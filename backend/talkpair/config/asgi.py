import os
from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "talkpair.config.settings")

django_asgi_app = get_asgi_application()

from talkpair.config.routing import build_application  # noqa: E402
from talkpair.signaling.coordinator import build_coordinator  # noqa: E402

# 프로세스 수명 동안 하나의 코디네이터
coordinator = build_coordinator()

application = build_application(coordinator, http_app=django_asgi_app)
