"""Per-event processing: match, persist, notify."""
import asyncio
from typing import Optional, Protocol

import structlog

from dbc_alert.alerts.telegram import format_alert
from dbc_alert.detection.matcher import SuffixMatcher
from dbc_alert.errors import StorageError
from dbc_alert.models import EventRecord, MatchResult, StreamEvent

logger = structlog.get_logger()


class EventStore(Protocol):
    async def append(self, record: EventRecord) -> int:
        ...


class Notifier(Protocol):
    async def send(self, text: str) -> bool:
        ...


def evaluate(accounts: list[str], matcher: SuffixMatcher) -> MatchResult:
    """Run the matcher over the accounts and pick mint/pool.

    On a match the mint is the first matching address and the pool is the
    first address overall. Without a match both are positional: first and
    second address.
    """
    matches = [address for address in accounts if matcher.matches(address)]

    if matches:
        return MatchResult(matches=matches, mint=matches[0], pool=accounts[0])

    return MatchResult(
        matches=[],
        mint=accounts[0] if accounts else None,
        pool=accounts[1] if len(accounts) > 1 else None,
    )


class EventProcessor:
    """Turns each stream event into one audit row and, on a match, one alert."""

    def __init__(self, matcher: SuffixMatcher, store: EventStore, notifier: Notifier):
        self.matcher = matcher
        self.store = store
        self.notifier = notifier
        self._pending: set[asyncio.Task] = set()

        # Stats
        self.processed = 0
        self.matched = 0
        self.write_failures = 0

    async def process(self, event: StreamEvent) -> None:
        """Process one event. Never raises."""
        try:
            await self._process(event)
        except Exception:
            logger.exception("event_processing_failed", signature=event.signature)

    async def _process(self, event: StreamEvent):
        result = evaluate(event.accounts, self.matcher)
        record = EventRecord(
            mint=result.mint,
            pool=result.pool,
            signature=event.signature,
            found_by=result.found_by,
            matched_team="",
        )
        self.processed += 1

        await self._persist(record)

        if not result.matched:
            logger.info("event_stored_no_match", signature=event.signature)
            return

        self.matched += 1
        suffixes = []
        for address in result.matches:
            suffix = self.matcher.matched_suffix(address)
            if suffix and suffix not in suffixes:
                suffixes.append(suffix)

        text = format_alert(result, event.signature, suffixes)
        self._dispatch(text, mint=result.mint)

    async def _persist(self, record: EventRecord) -> Optional[int]:
        # A failed write is dropped; the row content goes to the log instead.
        try:
            return await self.store.append(record)
        except StorageError as e:
            self.write_failures += 1
            logger.error(
                "event_write_failed",
                error=str(e),
                mint=record.mint,
                pool=record.pool,
                signature=record.signature,
                found_by=record.found_by,
            )
            return None
        except Exception:
            self.write_failures += 1
            logger.exception(
                "event_write_failed",
                mint=record.mint,
                pool=record.pool,
                signature=record.signature,
                found_by=record.found_by,
            )
            return None

    def _dispatch(self, text: str, mint: Optional[str]):
        task = asyncio.create_task(self._notify(text, mint))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _notify(self, text: str, mint: Optional[str]):
        try:
            sent = await self.notifier.send(text)
        except Exception:
            logger.exception("alert_dispatch_failed", mint=mint)
            return
        if sent:
            logger.info("alert_sent", mint=mint)
        else:
            logger.warning("alert_not_delivered", mint=mint)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self):
        """Wait for all in-flight notifications to finish."""
        while True:
            pending = [task for task in self._pending if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def cancel_pending(self):
        """Cancel in-flight notifications (immediate shutdown)."""
        for task in list(self._pending):
            task.cancel()
