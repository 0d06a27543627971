from .publisher import RealtimeChannel, RedisPublisher

__all__ = ["RealtimeChannel", "RedisPublisher"]
