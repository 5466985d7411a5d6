"""ASGI entrypoint for the multi-cam session API."""

from multicam_sessions.api.app import create_app
from multicam_sessions.containers import build_container

app = create_app(build_container())
