"""
Switchback - a lightweight pub/sub event broker.

Publishers stream topic-tagged events in; subscribers join a topic under an
optional consumer group and receive a round-robin share of its events.
"""

__version__ = "0.1.0"


def get_app():
    """Get the FastAPI application instance (lazy import to avoid initialization issues)."""
    from .main import create_app
    return create_app()


__all__ = ["get_app", "__version__"]
