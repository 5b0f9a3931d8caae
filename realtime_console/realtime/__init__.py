from .connection import RealtimeConnection, delta_from_item

__all__ = ["RealtimeConnection", "delta_from_item"]
