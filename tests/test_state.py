import logging

import pytest

from cfstatus.models import Account, DeploymentStatus, UsageMetrics, Worker
from cfstatus.dates import utcnow
from cfstatus.notifications import (
    LoggingNotifier,
    SafeNotifier,
    format_deployment_notification,
    format_worker_notification,
)
from cfstatus.state import AppState, StateStore


def test_listeners_receive_snapshots():
    store = StateStore()
    seen = []
    store.subscribe(seen.append)

    with store.update() as state:
        state.workers = [Worker(id="api")]

    assert len(seen) == 1
    assert seen[0].workers[0].name == "api"
    seen[0].workers.clear()
    assert store.state.workers[0].name == "api"


def test_unsubscribe_stops_notifications():
    store = StateStore()
    seen = []
    unsubscribe = store.subscribe(seen.append)

    unsubscribe()
    unsubscribe()
    with store.update() as state:
        state.is_loading = True

    assert seen == []


def test_failing_listener_does_not_stop_others(caplog):
    store = StateStore()
    seen = []

    def broken(_state):
        raise RuntimeError("listener bug")

    store.subscribe(broken)
    store.subscribe(seen.append)

    with caplog.at_level(logging.ERROR):
        with store.update() as state:
            state.error = "x"

    assert [snapshot.error for snapshot in seen] == ["x"]
    assert "failed" in caplog.text


def test_selected_account_falls_back_to_first():
    state = AppState(accounts=[Account(id="a", name="A"), Account(id="b", name="B")])

    assert state.selected_account.id == "a"
    state.selected_account_id = "b"
    assert state.selected_account.id == "b"
    state.selected_account_id = "missing"
    assert state.selected_account.id == "a"
    assert AppState().selected_account is None


def test_clear_resources_keeps_selection():
    now = utcnow()
    state = AppState(
        accounts=[Account(id="a", name="A")],
        selected_account_id="a",
        workers=[Worker(id="api")],
        usage_metrics=UsageMetrics(period_start=now, period_end=now, last_updated=now),
        usage_error="unavailable",
        error="boom",
    )

    state.clear_resources()

    assert state.accounts == []
    assert state.workers == []
    assert state.usage_metrics is None
    assert state.usage_error is None
    assert state.error is None
    assert state.selected_account_id == "a"


def test_deployment_notification_text():
    assert format_deployment_notification(
        "site", DeploymentStatus.SUCCESS, "production"
    ) == ("Deployment Successful", "site deployed successfully to production")
    assert format_deployment_notification("site", DeploymentStatus.FAILURE) == (
        "Deployment Failed",
        "site deployment failed",
    )
    assert format_deployment_notification("site", DeploymentStatus.ACTIVE) == (
        "Deployment Started",
        "site deployment in progress",
    )
    assert format_deployment_notification("site", DeploymentStatus.IDLE) is None


def test_worker_notification_text():
    assert format_worker_notification("api", "deployed a new version") == (
        "Worker Update",
        "api: deployed a new version",
    )


def test_logging_notifier_logs(caplog):
    with caplog.at_level(logging.INFO, logger="cfstatus.notifications"):
        LoggingNotifier().notify_deployment("site", DeploymentStatus.FAILURE, "preview")

    assert "Deployment Failed: site deployment failed on preview" in caplog.text


def test_safe_notifier_swallows_delivery_errors(caplog):
    class Broken:
        def notify_deployment(self, project_name, status, environment=None):
            raise OSError("no notification center")

        def notify_worker(self, worker_name, event):
            raise OSError("no notification center")

    notifier = SafeNotifier(Broken())

    with caplog.at_level(logging.ERROR):
        notifier.notify_deployment("site", DeploymentStatus.SUCCESS)
        notifier.notify_worker("api", "deployed a new version")

    assert caplog.text.count("no notification center") == 2


def test_listeners_notified_when_update_block_raises():
    store = StateStore()
    seen = []
    store.subscribe(seen.append)

    with pytest.raises(RuntimeError):
        with store.update() as state:
            state.is_loading = True
            raise RuntimeError("interrupted")

    assert [snapshot.is_loading for snapshot in seen] == [True]
