"""Push notifications for live clients."""

from .fanout import NotificationFanout

__all__ = ["NotificationFanout"]
