"""
Infrastructure layer - external system integrations.
Keeps the booking core free of connection handling.
"""

from .redis_client import close_redis, get_redis

__all__ = ["get_redis", "close_redis"]
