"""ASGI entrypoint for the consultation chat API."""

from tarot_chat.api.app import create_app
from tarot_chat.containers import build_container

app = create_app(build_container())
