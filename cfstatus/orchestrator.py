"""Refresh orchestration: fan-out fetches into a single application state."""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from cfstatus.activity import build_recent_activity
from cfstatus.client import CloudflareClient
from cfstatus.config import Config
from cfstatus.credentials import CredentialResolver
from cfstatus.dates import utcnow
from cfstatus.errors import CloudflareAPIError, describe_error, usage_error_message
from cfstatus.models import DeploymentStatus, PagesProject, Tab, Worker
from cfstatus.notifications import Notifier, SafeNotifier
from cfstatus.profiles import ProfileStore
from cfstatus.state import AppState, StateStore
from cfstatus.stores import PreferenceStore
from cfstatus.usage import UsageAggregator, is_usage_stale

logger = logging.getLogger(__name__)

SELECTED_ACCOUNT_KEY = "selectedAccountId"

WORKERS = "workers"
PAGES = "pages"
KV = "kv"
R2 = "r2"
D1 = "d1"
QUEUES = "queues"
USAGE = "usage"

ALL_RESOURCES = (WORKERS, PAGES, KV, R2, D1, QUEUES, USAGE)

TAB_RESOURCES = {
    Tab.OVERVIEW: (WORKERS, PAGES, USAGE),
    Tab.WORKERS: (WORKERS,),
    Tab.PAGES: (PAGES,),
    Tab.STORAGE: (KV, R2, D1, QUEUES),
}

# resource -> (state attribute, client method)
_LIST_RESOURCES = {
    WORKERS: ("workers", "get_workers"),
    PAGES: ("pages_projects", "get_pages_projects"),
    KV: ("kv_namespaces", "get_kv_namespaces"),
    R2: ("r2_buckets", "get_r2_buckets"),
    D1: ("d1_databases", "get_d1_databases"),
    QUEUES: ("queues", "get_queues"),
}

DASHBOARD_SECTIONS = {"workers": "workers", "pages": "pages", "storage": "r2"}

NOTIFY_STATUSES = (DeploymentStatus.SUCCESS, DeploymentStatus.FAILURE)

_KEEP = object()


@dataclass
class _UsageFailure:
    message: str


class RefreshOrchestrator:
    """Owns :class:`AppState` and drives every refresh.

    Only the accounts fetch can fail a refresh. Every other resource keeps its
    previous value when its fetch fails. A new refresh request cancels the
    one in flight.
    """

    def __init__(
        self,
        client: CloudflareClient,
        profiles: ProfileStore,
        resolver: CredentialResolver,
        preferences: PreferenceStore,
        notifier: Notifier,
        config: Config,
        usage: Optional[UsageAggregator] = None,
        store: Optional[StateStore] = None,
    ):
        self.client = client
        self.profiles = profiles
        self.resolver = resolver
        self.preferences = preferences
        self.notifier = SafeNotifier(notifier)
        self.config = config
        self.usage = usage or UsageAggregator(client)
        self.store = store or StateStore()

        self.previous_deployment_states: Dict[str, DeploymentStatus] = {}
        self.previous_worker_versions: Dict[str, datetime] = {}
        self._refresh_task: Optional[asyncio.Task] = None
        self._auto_refresh_task: Optional[asyncio.Task] = None

        self.store.state.selected_account_id = preferences.get(SELECTED_ACCOUNT_KEY)

    @property
    def state(self) -> AppState:
        return self.store.state

    # ── transitions ──────────────────────────────────────────────────────────

    def check_authentication(self) -> Optional[asyncio.Task]:
        credentials = self.resolver.resolve()
        profile = self.profiles.get_active_profile()
        with self.store.update() as state:
            state.is_authenticated = credentials.is_authenticated
            state.active_profile_id = profile.id if profile else None
            state.active_profile_name = profile.name if profile else None

        if not credentials.is_authenticated:
            logger.info("No Cloudflare credentials found")
            return None
        return self.request_refresh()

    def select_account(self, account_id: str) -> asyncio.Task:
        self.preferences.set(SELECTED_ACCOUNT_KEY, account_id)
        with self.store.update() as state:
            state.selected_account_id = account_id
            state.clear_account_data()
        return self.request_refresh()

    def on_profile_changed(self) -> Optional[asyncio.Task]:
        self._cancel_refresh()
        with self.store.update() as state:
            state.clear_resources()
            state.is_loading = False
        return self.check_authentication()

    def set_tab(self, tab: Tab) -> None:
        with self.store.update() as state:
            state.selected_tab = tab

    def request_refresh(self) -> asyncio.Task:
        """Start a refresh, cancelling any refresh still in flight."""
        self._cancel_refresh()
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._refresh_task = task
        return task

    def _cancel_refresh(self) -> None:
        task = self._refresh_task
        if task is not None and not task.done():
            logger.debug("Cancelling in-flight refresh")
            task.cancel()
        self._refresh_task = None

    # ── auto refresh ─────────────────────────────────────────────────────────

    def start_auto_refresh(self) -> None:
        self.stop_auto_refresh()
        self._auto_refresh_task = asyncio.get_running_loop().create_task(
            self._auto_refresh_loop()
        )

    def stop_auto_refresh(self) -> None:
        if self._auto_refresh_task is not None:
            self._auto_refresh_task.cancel()
            self._auto_refresh_task = None

    @property
    def auto_refresh_running(self) -> bool:
        task = self._auto_refresh_task
        return task is not None and not task.done()

    async def _auto_refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.refresh_interval_seconds)
            self.request_refresh()

    async def shutdown(self) -> None:
        tasks = [
            task
            for task in (self._auto_refresh_task, self._refresh_task)
            if task is not None
        ]
        self.stop_auto_refresh()
        self._cancel_refresh()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # ── refresh ──────────────────────────────────────────────────────────────

    async def refresh(self) -> None:
        if not self.state.is_authenticated:
            return

        with self.store.update() as state:
            state.is_loading = True
            state.error = None

        try:
            accounts = await self.client.get_accounts()
            if not accounts:
                self._finish(error="No accounts found")
                return

            with self.store.update() as state:
                state.accounts = accounts
            account = self.state.selected_account
            if account is None:
                self._finish(error="No account selected")
                return

            eager = TAB_RESOURCES[self.state.selected_tab]
            await self._load(eager, account.id)
            remaining = [name for name in ALL_RESOURCES if name not in eager]
            await self._load(remaining, account.id)
        except Exception as exc:
            if not isinstance(exc, CloudflareAPIError):
                logger.exception("Unexpected refresh failure")
            else:
                logger.warning("Refresh failed: %s", exc.description)
            self._finish(error=describe_error(exc))
            return

        self._finish(last_refresh=utcnow())

    def _finish(
        self, error: Optional[str] = None, last_refresh: Optional[datetime] = None
    ) -> None:
        with self.store.update() as state:
            state.is_loading = False
            if error is not None:
                state.error = error
            if last_refresh is not None:
                state.last_refresh = last_refresh

    async def _load(self, resources: Sequence[str], account_id: str) -> None:
        """Fetch ``resources`` concurrently, then commit them in one update."""
        if not resources:
            return
        results = await asyncio.gather(
            *(self._fetch(name, account_id) for name in resources)
        )

        workers: Optional[List[Worker]] = None
        projects: Optional[List[PagesProject]] = None
        with self.store.update() as state:
            for name, value in zip(resources, results):
                if value is _KEEP:
                    continue
                if name == USAGE:
                    if isinstance(value, _UsageFailure):
                        state.usage_error = value.message
                    else:
                        state.usage_metrics = value
                        state.usage_error = None
                    continue

                setattr(state, _LIST_RESOURCES[name][0], value)
                if name == WORKERS:
                    workers = value
                elif name == PAGES:
                    projects = value

            if workers is not None or projects is not None:
                state.recent_activity = build_recent_activity(
                    state.workers, state.pages_projects
                )

        if workers is not None:
            self._check_worker_changes(workers)
        if projects is not None:
            self._check_deployment_changes(projects)

    def _fetch(self, name: str, account_id: str) -> Awaitable[Any]:
        if name == USAGE:
            return self._fetch_usage(account_id)
        attribute, method = _LIST_RESOURCES[name]
        fetch: Callable[[str], Awaitable[Any]] = getattr(self.client, method)
        return self._keep_on_failure(attribute, fetch(account_id))

    async def _keep_on_failure(self, attribute: str, call: Awaitable[Any]) -> Any:
        try:
            return await call
        except CloudflareAPIError as exc:
            logger.warning("Keeping previous %s: %s", attribute, exc.description)
            return _KEEP

    async def _fetch_usage(self, account_id: str) -> Any:
        max_age = timedelta(seconds=self.config.usage_max_age_seconds)
        if not is_usage_stale(self.state.usage_metrics, utcnow(), max_age):
            await asyncio.sleep(0)
            return _KEEP
        try:
            return await self.usage.fetch(account_id)
        except CloudflareAPIError as exc:
            logger.warning("Usage metrics unavailable: %s", exc.description)
            return _UsageFailure(usage_error_message(exc))

    # ── change detection ─────────────────────────────────────────────────────

    def _check_deployment_changes(self, projects: Sequence[PagesProject]) -> None:
        for project in projects:
            deployment = project.latest_deployment
            if deployment is None:
                continue

            current = deployment.status
            previous = self.previous_deployment_states.get(deployment.id)
            changed = previous is not None and previous != current
            if changed and current in NOTIFY_STATUSES:
                self.notifier.notify_deployment(
                    project.name, current, deployment.environment
                )
            self.previous_deployment_states[deployment.id] = current

    def _check_worker_changes(self, workers: Sequence[Worker]) -> None:
        for worker in workers:
            modified = worker.modified_on
            if modified is None:
                continue
            previous = self.previous_worker_versions.get(worker.id)
            if previous is not None and modified > previous:
                self.notifier.notify_worker(worker.name, "deployed a new version")
            self.previous_worker_versions[worker.id] = modified

    # ── links ────────────────────────────────────────────────────────────────

    def dashboard_url(self, section: Optional[str] = None) -> str:
        base = self.config.dashboard_url.rstrip("/")
        account = self.state.selected_account
        if section is None or account is None:
            return base
        return f"{base}/{account.id}/{DASHBOARD_SECTIONS.get(section, section)}"
