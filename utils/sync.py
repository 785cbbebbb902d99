"""Hybrid local/remote synchronization for the card store.

Conflicts are settled by last-write-wins on `updated_at`: both directions
reject strictly older writes, and a dirty local record always carries a newer
`updated_at` than the copy it was derived from, so offline reviews survive
until they are flushed.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Iterable, List, Optional, Union

from db.card_store import CardStore
from db.remote_store import RemoteStore
from models.card import FlashcardRecord, utc_now
from utils.errors import ConflictDiscarded, RemoteUnavailable, SyncDegraded, UserMismatch

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (RemoteUnavailable, OSError, asyncio.TimeoutError)


@dataclass
class SyncReport:
    operation: str
    applied: List[str] = field(default_factory=list)
    conflicts: List[ConflictDiscarded] = field(default_factory=list)
    degraded: Optional[SyncDegraded] = None

    @property
    def ok(self) -> bool:
        return self.degraded is None

    def merge(self, other: "SyncReport") -> "SyncReport":
        return SyncReport(
            operation=f"{self.operation}+{other.operation}",
            applied=self.applied + other.applied,
            conflicts=self.conflicts + other.conflicts,
            degraded=self.degraded or other.degraded,
        )


@dataclass(frozen=True)
class SyncStatus:
    last_sync_at: Optional[datetime]
    pending_changes: int
    in_progress: bool
    last_error: Optional[str]
    retry_count: int


class SyncCoordinator:
    def __init__(
        self,
        store: CardStore,
        remote: RemoteStore,
        user_id: str,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        timeout: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.remote = remote
        self.user_id = user_id
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock
        self._in_progress = 0
        self._retry_count = 0
        self._last_sync_at: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._flush_task: Optional[asyncio.Task] = None

    @property
    def status(self) -> SyncStatus:
        return SyncStatus(
            last_sync_at=self._last_sync_at,
            pending_changes=len(self.store.dirty_records()),
            in_progress=self._in_progress > 0,
            last_error=self._last_error,
            retry_count=self._retry_count,
        )

    async def _call_remote(self, description: str, call: Callable[[], Awaitable]):
        """Run a remote call with a timeout, retrying with exponential backoff."""
        last_error: Optional[BaseException] = None
        for attempt in range(self.max_retries + 1):
            if attempt:
                delay = self.backoff_base * (2 ** (attempt - 1))
                logger.warning(
                    "Retrying %s in %.1fs (attempt %d/%d): %s",
                    description, delay, attempt, self.max_retries, last_error,
                )
                self._retry_count += 1
                await self._sleep(delay)
            try:
                return await asyncio.wait_for(call(), timeout=self.timeout)
            except RETRYABLE_ERRORS as exc:
                last_error = exc
        raise SyncDegraded(
            f"Could not {description} after {self.max_retries + 1} attempts",
            pending=len(self.store.dirty_records()),
            cause=last_error,
        )

    def _finish(self, report: SyncReport) -> SyncReport:
        if report.ok:
            self._last_sync_at = self._clock()
            self._last_error = None
            self._retry_count = 0
        else:
            self._last_error = str(report.degraded)
            logger.warning("Sync degraded during %s: %s", report.operation, report.degraded)
        for conflict in report.conflicts:
            logger.info("%s", conflict)
        return report

    def _user(self, user_id: Optional[str]) -> str:
        """The store holds one user's cards, and its ledger tracks one remote cursor."""
        if user_id is None or user_id == self.user_id:
            return self.user_id
        raise UserMismatch(user_id, self.user_id)

    async def flush(self, user_id: Optional[str] = None) -> SyncReport:
        """Push every dirty record. Failures leave records dirty for the next try."""
        user_id = self._user(user_id)
        report = SyncReport("flush")
        self._in_progress += 1
        try:
            for record in self.store.dirty_records():
                try:
                    stored = await self._call_remote(
                        f"upsert card {record.id}",
                        lambda record=record: self.remote.upsert(user_id, record),
                    )
                except SyncDegraded as exc:
                    self.store.ledger.mark_failed(record.id)
                    report.degraded = exc
                    break
                # Checked against the current local version, not the one sent.
                self.store.mark_synced(record.id, record.updated_at)
                if stored:
                    report.applied.append(record.id)
                else:
                    report.conflicts.append(ConflictDiscarded(record.id, "local", record.updated_at))
        finally:
            self._in_progress -= 1
        return self._finish(report)

    async def pull(
        self,
        remote_snapshot: Optional[Iterable[Union[FlashcardRecord, dict]]] = None,
        user_id: Optional[str] = None,
    ) -> SyncReport:
        """Merge remote records into the store by last-write-wins.

        Without a snapshot, fetches everything the remote received since the
        last pull. The cursor is the remote's receive sequence, so a late push
        carrying an old `updated_at` is still picked up.
        """
        user_id = self._user(user_id)
        report = SyncReport("pull")
        cursor = None
        self._in_progress += 1
        try:
            if remote_snapshot is None:
                since = self.store.ledger.pull_cursor
                try:
                    changes = await self._call_remote(
                        "fetch remote changes",
                        lambda: self.remote.fetch_changes(user_id, since),
                    )
                except SyncDegraded as exc:
                    report.degraded = exc
                    return self._finish(report)
                remote_snapshot, cursor = changes.records, changes.cursor
            for item in remote_snapshot:
                record = item if isinstance(item, FlashcardRecord) else FlashcardRecord.model_validate(item)
                local = self.store.get(record.id)
                if self.store.apply_remote(record):
                    report.applied.append(record.id)
                elif local is not None and record.updated_at < local.updated_at:
                    report.conflicts.append(
                        ConflictDiscarded(record.id, "remote", record.updated_at, local.updated_at)
                    )
            self.store.ledger.advance_pull_cursor(cursor)
        finally:
            self._in_progress -= 1
        return self._finish(report)

    async def force_sync(self, user_id: Optional[str] = None) -> SyncReport:
        """Pull then flush. Reports failure instead of raising."""
        user_id = self._user(user_id)
        pulled = await self.pull(user_id=user_id)
        flushed = await self.flush(user_id=user_id)
        report = pulled.merge(flushed)
        if not report.ok:
            self._last_error = str(report.degraded)
        return report

    def schedule_flush(self) -> Optional[asyncio.Task]:
        """Start a background flush unless one is already running."""
        if self._flush_task is not None and not self._flush_task.done():
            return self._flush_task
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None
        self._flush_task = loop.create_task(self.flush())
        self._flush_task.add_done_callback(self._flush_done)
        return self._flush_task

    def _flush_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._last_error = f"{type(exc).__name__}: {exc}"
            logger.error("Background flush failed", exc_info=exc)

    async def run_periodic(self, interval: float) -> None:
        while True:
            await self._sleep(interval)
            await self.force_sync()
