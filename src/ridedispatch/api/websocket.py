"""Live ride stream: tracking points and status changes over a WebSocket."""

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from ridedispatch.core.exceptions import InvalidStateError, NotFoundError
from ridedispatch.rides.ride import TERMINAL_STATUSES

logger = logging.getLogger(__name__)

router = APIRouter()

_TERMINAL_VALUES = {s.value for s in TERMINAL_STATUSES}

# Application close codes for rejected subscriptions
CLOSE_POLICY_VIOLATION = 1008
CLOSE_NOT_FOUND = 4404
CLOSE_RIDE_FINISHED = 4409


def extract_api_key_and_protocol(websocket: WebSocket) -> tuple[str | None, str | None]:
    """Extract API key and full protocol from Sec-WebSocket-Protocol header.

    Expected format: apikey.<key>
    Returns: (api_key, full_protocol) - both needed for proper handshake
    """
    protocol_header = websocket.headers.get("sec-websocket-protocol")
    if protocol_header:
        protocols = [p.strip() for p in protocol_header.split(",")]
        for protocol in protocols:
            if protocol.startswith("apikey."):
                return protocol.split(".", 1)[1], protocol
    return None, None


def is_final(message: dict[str, Any]) -> bool:
    return message.get("type") == "status" and message.get("status") in _TERMINAL_VALUES


@router.websocket("/rides/{ride_id}/stream")
async def ride_stream(websocket: WebSocket, ride_id: str) -> None:
    api_key, subprotocol = extract_api_key_and_protocol(websocket)
    if api_key is None:
        api_key = websocket.headers.get("x-api-key")

    expected = getattr(websocket.app.state, "api_key", None)
    if not expected or api_key != expected:
        await websocket.close(code=CLOSE_POLICY_VIOLATION)
        return

    broadcaster = websocket.app.state.service.broadcaster
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    def listener(message: dict[str, Any]) -> None:
        # Broadcaster callbacks arrive on whichever thread recorded the event
        loop.call_soon_threadsafe(queue.put_nowait, message)

    try:
        subscription = broadcaster.subscribe(ride_id, listener)
    except NotFoundError:
        await websocket.close(code=CLOSE_NOT_FOUND)
        return
    except InvalidStateError:
        await websocket.close(code=CLOSE_RIDE_FINISHED)
        return

    await websocket.accept(subprotocol=subprotocol)
    logger.debug(f"Stream opened for ride {ride_id}")
    try:
        while True:
            message = await queue.get()
            await websocket.send_json(message)
            if is_final(message):
                break
    except WebSocketDisconnect:
        logger.debug(f"Stream client for ride {ride_id} disconnected")
    finally:
        subscription.close()

    if websocket.application_state == WebSocketState.CONNECTED:
        await websocket.close()
