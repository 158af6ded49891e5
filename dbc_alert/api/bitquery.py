"""Bitquery streaming client for DBC pool initialisations."""
import asyncio
import enum
import json
from typing import Any, Awaitable, Callable, Optional

import structlog
import websockets
from websockets.exceptions import WebSocketException

from dbc_alert.errors import StreamError
from dbc_alert.models import StreamEvent

logger = structlog.get_logger()

# API endpoints
WS_URL = "wss://streaming.bitquery.io/graphql"
SUBPROTOCOL = "graphql-transport-ws"

DBC_PROGRAM_ADDRESS = "dbcij3LWUppWqq96dh6gJWwBifmcGfLSB5D4DuSMaqN"
DBC_METHOD = "initialize_virtual_pool_with_spl_token"

SUBSCRIPTION_ID = "1"

QUERY_TEMPLATE = """
subscription {
  Solana {
    Instructions(
      where: {
        Instruction: {
          Program: { Address: { is: "%(program)s" } },
          Method: { is: "%(method)s" }
        },
        Transaction: { Result: { Success: true } }
      }
    ) {
      Block { Time }
      Instruction { Method Accounts { Address } }
      Transaction { Signature }
    }
  }
}
"""


def build_query(program_address: str = DBC_PROGRAM_ADDRESS, method: str = DBC_METHOD) -> str:
    """Return the subscription query for one program/method pair."""
    return QUERY_TEMPLATE % {"program": program_address, "method": method}


def normalize_instructions(payload: Any) -> list[dict]:
    """Extract `data.Solana.Instructions` as a list.

    Bitquery delivers either a single instruction object or a list of them
    under the same field. Anything else (missing field, wrong type) yields
    an empty list.
    """
    if not isinstance(payload, dict):
        return []
    data = payload.get("data")
    if not isinstance(data, dict):
        return []
    solana = data.get("Solana")
    if not isinstance(solana, dict):
        return []

    instructions = solana.get("Instructions")
    if isinstance(instructions, dict):
        return [instructions]
    if isinstance(instructions, list):
        return [item for item in instructions if isinstance(item, dict)]
    return []


class StreamState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"


class BitqueryStream:
    """Single long-lived subscription to the Bitquery streaming API.

    Each event is awaited through `on_event` before the next one is handed
    over, so events reach the processor in delivery order. The stream does
    not reconnect: after an error or completion it stays disconnected.
    """

    def __init__(
        self,
        api_key: str,
        on_event: Callable[[StreamEvent], Awaitable[None]],
        url: str = WS_URL,
        program_address: str = DBC_PROGRAM_ADDRESS,
        method: str = DBC_METHOD,
        ack_timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.url = url
        self.query = build_query(program_address, method)
        self.ack_timeout = ack_timeout
        self._on_event = on_event
        self._state = StreamState.DISCONNECTED

        # Stats
        self.messages_received = 0
        self.events_dispatched = 0

    @property
    def state(self) -> StreamState:
        return self._state

    def _set_state(self, state: StreamState):
        if state is not self._state:
            logger.info("stream_state", previous=self._state.value, current=state.value)
            self._state = state

    async def run(self):
        """Connect, subscribe, and consume until the stream ends."""
        self._set_state(StreamState.CONNECTING)
        logger.info("subscription_starting", url=self.url)
        try:
            async with websockets.connect(
                self.url,
                subprotocols=[SUBPROTOCOL],
                additional_headers={"X-API-KEY": self.api_key},
                open_timeout=self.ack_timeout,
            ) as ws:
                await self.serve(ws)
        except StreamError as e:
            logger.error("subscription_error", error=str(e))
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.error("subscription_connection_failed", error=str(e), error_type=type(e).__name__)
        finally:
            self._set_state(StreamState.DISCONNECTED)

    async def serve(self, ws):
        """Run the graphql-transport-ws protocol over an open socket."""
        await self._handshake(ws)
        await self._send(ws, {
            "id": SUBSCRIPTION_ID,
            "type": "subscribe",
            "payload": {"query": self.query},
        })
        self._set_state(StreamState.SUBSCRIBED)

        async for raw in ws:
            message = self._decode(raw)
            if message is None:
                continue

            kind = message.get("type")
            if kind == "next":
                self.messages_received += 1
                await self.handle_payload(message.get("payload"))
            elif kind == "ping":
                await self._send(ws, {"type": "pong"})
            elif kind == "error":
                raise StreamError(f"Subscription rejected: {message.get('payload')}")
            elif kind == "complete":
                logger.info("subscription_complete")
                return
            elif kind != "pong":
                logger.debug("stream_message_ignored", type=kind)

        logger.info("subscription_closed_by_server")

    async def handle_payload(self, payload: Any) -> int:
        """Dispatch every instruction in one `next` payload, in order."""
        if isinstance(payload, dict) and payload.get("errors"):
            logger.warning("stream_payload_errors", errors=payload.get("errors"))

        items = normalize_instructions(payload)
        if not items:
            logger.debug("stream_payload_skipped")
            return 0

        for item in items:
            await self._on_event(StreamEvent.from_instruction(item))
            self.events_dispatched += 1
        return len(items)

    async def _handshake(self, ws):
        await self._send(ws, {
            "type": "connection_init",
            "payload": {"headers": {"X-API-KEY": self.api_key}},
        })
        while True:
            raw = await asyncio.wait_for(ws.recv(), timeout=self.ack_timeout)
            message = self._decode(raw)
            if message is None:
                continue
            kind = message.get("type")
            if kind == "connection_ack":
                logger.info("stream_connection_ack")
                return
            if kind == "ping":
                await self._send(ws, {"type": "pong"})
            elif kind in ("connection_error", "error"):
                raise StreamError(f"Connection refused: {message.get('payload')}")

    @staticmethod
    async def _send(ws, message: dict):
        await ws.send(json.dumps(message))

    @staticmethod
    def _decode(raw) -> Optional[dict]:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning("stream_frame_undecodable", error=str(e))
            return None
        if not isinstance(message, dict):
            logger.warning("stream_frame_unexpected", frame_type=type(message).__name__)
            return None
        return message
