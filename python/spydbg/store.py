"""Snapshot store holding the reconciled state of one debugging session."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from .events import (
    BaseEvent,
    EventBus,
    EventSubscription,
    NotificationHandler,
    PageEvent,
    SliceChanged,
)
from .models import ConsoleRecord, DatabaseSlice, NetworkRecord, PageSnapshot, StorageSlice, SystemRecord
from .reconcile import reconcile, reconcile_page


logger = logging.getLogger(__name__)

PageNormalizer = Callable[[str, str], Tuple[Optional[List[Any]], str]]

CLEARABLE_CHANNELS: Tuple[str, ...] = ("console", "network")


def passthrough_normalizer(html: str, base_url: str) -> Tuple[Optional[List[Any]], str]:
    """Default normalizer: keeps the markup as delivered and builds no tree."""
    return None, html


def empty_slices() -> Dict[str, Any]:
    return {
        "console": (),
        "system": (),
        "network": (),
        "connect": (),
        "page": PageSnapshot(),
        "storage": StorageSlice(),
        "database": DatabaseSlice(),
    }


@dataclass
class StoreConfig:
    """Store tuning.

    ``queue_size`` bounds each subscriber's notification queue.  When a
    subscriber falls behind, the oldest change notifications are dropped
    first; stale-detail signals are only evicted once nothing else is left.
    """

    serialize_pages: bool = False
    page_workers: int = 4
    queue_size: int = 256


class SnapshotStore:
    """Owns every channel slice and publishes committed changes.

    All writes go through ``apply`` (reconcile, then commit) or the explicit
    ``clear``/``reset`` helpers.  A commit only notifies subscribers when the
    new slice differs from the old one.
    """

    def __init__(
        self,
        config: Optional[StoreConfig] = None,
        *,
        bus: Optional[EventBus] = None,
        normalizer: Optional[PageNormalizer] = None,
    ) -> None:
        self.config = config or StoreConfig()
        self.bus = bus if bus is not None else EventBus()
        self.normalizer = normalizer or passthrough_normalizer
        self._lock = threading.Lock()
        self._slices: Dict[str, Any] = empty_slices()
        self._generation = 0
        self._executor: Optional[ThreadPoolExecutor] = None
        self._page_futures: Set[Future] = set()
        self._futures_lock = threading.Lock()
        self.console_type_filter: Tuple[str, ...] = ()
        self.console_keyword_filter: str = ""

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------
    def get(self, channel: str) -> Any:
        if channel not in self._slices:
            raise KeyError(channel)
        with self._lock:
            return self._slices[channel]

    @property
    def console(self) -> Tuple[ConsoleRecord, ...]:
        return self.get("console")

    @property
    def system(self) -> Tuple[SystemRecord, ...]:
        return self.get("system")

    @property
    def network(self) -> Tuple[NetworkRecord, ...]:
        return self.get("network")

    @property
    def connect(self) -> Tuple[str, ...]:
        return self.get("connect")

    @property
    def page(self) -> PageSnapshot:
        return self.get("page")

    @property
    def storage(self) -> StorageSlice:
        return self.get("storage")

    @property
    def database(self) -> DatabaseSlice:
        return self.get("database")

    def subscribe(
        self,
        handler: NotificationHandler,
        channels: Optional[Iterable[str]] = None,
        *,
        kinds: Optional[Iterable[str]] = None,
    ) -> int:
        sub = EventSubscription(
            channels=list(channels) if channels else None,
            kinds=list(kinds) if kinds else None,
            queue_size=self.config.queue_size,
            handler=handler,
        )
        return self.bus.subscribe(sub)

    def unsubscribe(self, token: int) -> None:
        self.bus.unsubscribe(token)

    # ------------------------------------------------------------------
    # Mutation path
    # ------------------------------------------------------------------
    def apply(self, event: BaseEvent) -> Union[bool, Future]:
        """Reconcile one event into its slice.

        Returns whether the slice changed, or for page events the future of
        the pending normalize-and-commit step.
        """

        if isinstance(event, PageEvent):
            return self._submit_page(event)
        channel = event.channel
        if channel not in self._slices:
            raise ValueError(f"unknown channel: {channel!r}")
        with self._lock:
            current = self._slices[channel]
            updated = reconcile(current, event, signal=self.bus.publish)
            return self._commit_locked(channel, current, updated)

    def commit(self, channel: str, value: Any) -> bool:
        if channel not in self._slices:
            raise ValueError(f"unknown channel: {channel!r}")
        with self._lock:
            return self._commit_locked(channel, self._slices[channel], value)

    def _commit_locked(self, channel: str, current: Any, value: Any) -> bool:
        if value is current or value == current:
            return False
        self._slices[channel] = value
        self.bus.publish(SliceChanged(channel=channel, old=current, new=value))
        return True

    def clear(self, channel: str) -> bool:
        """Drop the accumulated history of a console or network slice."""
        if channel not in CLEARABLE_CHANNELS:
            raise ValueError(f"channel {channel!r} does not support clearing")
        return self.commit(channel, ())

    def reset(self) -> None:
        """Return every slice to its empty value (session end).

        Page normalizations still in flight when this runs are discarded.
        """
        with self._lock:
            self._generation += 1
            for channel, value in empty_slices().items():
                self._commit_locked(channel, self._slices[channel], value)

    # ------------------------------------------------------------------
    # Page pipeline
    # ------------------------------------------------------------------
    def _ensure_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            workers = 1 if self.config.serialize_pages else max(1, self.config.page_workers)
            self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="spydbg-page")
        return self._executor

    def _submit_page(self, event: PageEvent) -> Future:
        with self._lock:
            generation = self._generation
        future = self._ensure_executor().submit(self._normalize_and_commit, event, generation)
        with self._futures_lock:
            self._page_futures.add(future)
        future.add_done_callback(self._forget_page_future)
        return future

    def _forget_page_future(self, future: Future) -> None:
        with self._futures_lock:
            self._page_futures.discard(future)

    def _normalize_and_commit(self, event: PageEvent, generation: int) -> bool:
        # Commits happen in completion order; with several workers a slow
        # normalization can land after a newer page.
        try:
            tree, html = self.normalizer(event.html, event.href)
        except Exception:
            logger.exception("page normalization failed for %s", event.href or "<unknown>")
            return False
        with self._lock:
            if generation != self._generation:
                logger.debug("discarding page %s from a reset session", event.href or "<unknown>")
                return False
            current = self._slices["page"]
            updated = reconcile_page(current, event, tree, html)
            return self._commit_locked("page", current, updated)

    def wait_for_pages(self, timeout: Optional[float] = None) -> bool:
        """Block until queued page normalizations have committed."""
        with self._futures_lock:
            pending = set(self._page_futures)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def close(self) -> None:
        executor = self._executor
        self._executor = None
        if executor is not None:
            executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Console view filters
    # ------------------------------------------------------------------
    def set_console_type_filter(self, types: Iterable[str]) -> None:
        self.console_type_filter = tuple(types)

    def set_console_keyword_filter(self, keyword: str) -> None:
        self.console_keyword_filter = keyword or ""

    def visible_console(self) -> List[ConsoleRecord]:
        """Console records passing the display filters; stored state is untouched."""
        types = set(self.console_type_filter)
        keyword = self.console_keyword_filter.lower()
        visible: List[ConsoleRecord] = []
        for record in self.console:
            if types and record.log_type not in types:
                continue
            if keyword and keyword not in record.text().lower():
                continue
            visible.append(record)
        return visible

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------
    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            slices = dict(self._slices)
        return {
            "console": [record.as_dict() for record in slices["console"]],
            "system": [record.as_dict() for record in slices["system"]],
            "network": [record.as_dict() for record in slices["network"]],
            "connect": list(slices["connect"]),
            "page": slices["page"].as_dict(),
            "storage": slices["storage"].as_dict(),
            "database": slices["database"].as_dict(),
        }


