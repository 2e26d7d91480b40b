"""Application state and its change-notification container."""

import copy
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterator, List, Optional

from cfstatus.models import (
    Account,
    ActivityItem,
    D1Database,
    KVNamespace,
    PagesProject,
    Queue,
    R2Bucket,
    Tab,
    UsageMetrics,
    Worker,
)

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    """Everything the presentation layer shows."""

    is_authenticated: bool = False
    is_loading: bool = False
    error: Optional[str] = None
    last_refresh: Optional[datetime] = None

    accounts: List[Account] = field(default_factory=list)
    selected_account_id: Optional[str] = None
    selected_tab: Tab = Tab.OVERVIEW

    workers: List[Worker] = field(default_factory=list)
    pages_projects: List[PagesProject] = field(default_factory=list)
    kv_namespaces: List[KVNamespace] = field(default_factory=list)
    r2_buckets: List[R2Bucket] = field(default_factory=list)
    d1_databases: List[D1Database] = field(default_factory=list)
    queues: List[Queue] = field(default_factory=list)

    usage_metrics: Optional[UsageMetrics] = None
    usage_error: Optional[str] = None
    recent_activity: List[ActivityItem] = field(default_factory=list)

    active_profile_id: Optional[str] = None
    active_profile_name: Optional[str] = None

    @property
    def selected_account(self) -> Optional[Account]:
        if self.selected_account_id is not None:
            for account in self.accounts:
                if account.id == self.selected_account_id:
                    return account
        return self.accounts[0] if self.accounts else None

    def clear_account_data(self) -> None:
        """Drop everything loaded for the selected account."""
        self.workers = []
        self.pages_projects = []
        self.kv_namespaces = []
        self.r2_buckets = []
        self.d1_databases = []
        self.queues = []
        self.recent_activity = []
        self.usage_metrics = None
        self.usage_error = None

    def clear_resources(self) -> None:
        self.clear_account_data()
        self.accounts = []
        self.error = None


StateListener = Callable[[AppState], None]


class StateStore:
    """Single owner of :class:`AppState` with subscribe/notify.

    Listeners receive a deep copy, so nothing outside the store can mutate
    the live state.
    """

    def __init__(self, state: Optional[AppState] = None):
        self.state = state or AppState()
        self._listeners: List[StateListener] = []

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> AppState:
        return copy.deepcopy(self.state)

    def notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("State listener %r failed", listener)

    @contextmanager
    def update(self) -> Iterator[AppState]:
        """Mutate the state inside the block and notify listeners once on exit."""
        try:
            yield self.state
        finally:
            self.notify()
