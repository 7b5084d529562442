"""ASGI entrypoint for the guest access API."""

from guest_access.api.app import create_app
from guest_access.containers import build_container

app = create_app(build_container())
