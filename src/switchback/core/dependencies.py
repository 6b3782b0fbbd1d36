"""FastAPI dependencies resolving per-application state."""

from fastapi import Request

from ..broker import Broker
from .config import Settings


def get_broker(request: Request) -> Broker:
    """The broker owned by the application serving this request."""
    return request.app.state.broker


def get_settings(request: Request) -> Settings:
    """The settings the application was created with."""
    return request.app.state.settings
