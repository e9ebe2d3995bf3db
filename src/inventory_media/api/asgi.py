"""ASGI entrypoint for the capture station API."""

from inventory_media.api.app import create_app
from inventory_media.containers import build_container

app = create_app(build_container())
