import json
import logging
from unittest.mock import MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from ridedispatch.core.correlation import with_correlation
from ridedispatch.realtime.channels import (
    driver_channel,
    is_valid_channel,
    ride_channel,
    rider_channel,
)
from ridedispatch.realtime.publisher import RedisPublisher

CONFIG = {"host": "localhost", "port": 6379, "password": "secret"}


@pytest.fixture
def redis_client():
    with patch("ridedispatch.realtime.publisher.redis.Redis") as redis_cls:
        client = MagicMock()
        redis_cls.return_value = client
        yield client


@pytest.mark.unit
class TestChannels:
    def test_channel_names(self):
        assert driver_channel("d1") == "driver:d1"
        assert rider_channel("r1") == "rider:r1"
        assert ride_channel("abc-123") == "ride:abc-123"

    @pytest.mark.parametrize(
        "channel", ["driver:d1", "rider:r-1", "ride:0b6f0c1e-4d8a-4c83-9f55-1f4f6f8b2a10"]
    )
    def test_valid_channels(self, channel):
        assert is_valid_channel(channel)

    @pytest.mark.parametrize("channel", ["", "driver:", "trips:1", "driver:a b", "ride:1:2"])
    def test_invalid_channels(self, channel):
        assert not is_valid_channel(channel)


@pytest.mark.unit
class TestRedisPublisher:
    def test_client_built_from_config(self):
        with patch("ridedispatch.realtime.publisher.redis.Redis") as redis_cls:
            RedisPublisher(CONFIG)
        redis_cls.assert_called_once_with(
            host="localhost",
            port=6379,
            db=0,
            password="secret",
            ssl=False,
            socket_timeout=2.0,
            socket_connect_timeout=2.0,
            decode_responses=True,
        )

    def test_socket_timeouts_from_config(self):
        with patch("ridedispatch.realtime.publisher.redis.Redis") as redis_cls:
            RedisPublisher({**CONFIG, "socket_timeout": 0.5, "socket_connect_timeout": 1.0})

        kwargs = redis_cls.call_args.kwargs
        assert kwargs["socket_timeout"] == 0.5
        assert kwargs["socket_connect_timeout"] == 1.0

    def test_publishes_json(self, redis_client):
        publisher = RedisPublisher(CONFIG)

        publisher.publish_sync("driver:d1", {"type": "offer", "request_id": "req-1"})

        channel, payload = redis_client.publish.call_args.args
        assert channel == "driver:d1"
        assert json.loads(payload) == {"type": "offer", "request_id": "req-1"}

    def test_adds_correlation_id(self, redis_client):
        publisher = RedisPublisher(CONFIG)

        with with_correlation("req-7"):
            publisher.publish_sync("rider:r1", {"type": "driver_matched"})

        payload = json.loads(redis_client.publish.call_args.args[1])
        assert payload["correlation_id"] == "req-7"

    def test_rejects_unknown_channel(self, redis_client):
        publisher = RedisPublisher(CONFIG)

        with pytest.raises(ValueError, match="not a valid channel"):
            publisher.publish_sync("trips:1", {"type": "offer"})
        redis_client.publish.assert_not_called()

    def test_redis_failure_is_logged_not_raised(self, redis_client, caplog):
        redis_client.publish.side_effect = RedisConnectionError("connection refused")
        publisher = RedisPublisher(CONFIG)

        with caplog.at_level(logging.ERROR, logger="ridedispatch.realtime.publisher"):
            publisher.publish_sync("ride:abc", {"type": "status"})

        assert "Failed to publish to channel ride:abc" in caplog.text

    async def test_async_publish(self, redis_client):
        publisher = RedisPublisher(CONFIG)

        await publisher.publish("driver:d2", {"type": "offer_unavailable"})

        assert redis_client.publish.call_args.args[0] == "driver:d2"

    def test_ping(self, redis_client):
        redis_client.ping.return_value = True
        assert RedisPublisher(CONFIG).ping()

        redis_client.ping.side_effect = RedisConnectionError("down")
        assert not RedisPublisher(CONFIG).ping()
