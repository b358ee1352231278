"""
Realtime fan-out of chat messages.

The core only publishes; delivering a payload to the clients subscribed to a
chat's channel is the transport's job. ``MessageService`` receives a
``Broadcaster`` at construction time so tests can hand it a fake.
"""
import json
from typing import Any, Protocol

from carebridge.core.redis import RedisClient

RECEIVE_MESSAGE_EVENT = "receive_message"


class Broadcaster(Protocol):
    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        ...


class RedisBroadcaster:
    def __init__(self, client: RedisClient):
        self.client = client

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        await self.client.publish(channel, json.dumps(payload, default=str))

    async def close(self):
        await self.client.close()


def message_event(message: dict[str, Any]) -> dict[str, Any]:
    return {"event": RECEIVE_MESSAGE_EVENT, "data": message}
