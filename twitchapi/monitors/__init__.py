"""
📡 Monitors - Polling-based stream status monitoring
"""
from .stream_monitor import LiveStateMonitor, PendingNotification

__all__ = ["LiveStateMonitor", "PendingNotification"]
