"""Deployment and worker notifications."""

import logging
from typing import Optional, Protocol, Tuple

from cfstatus.models import DeploymentStatus

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify_deployment(
        self,
        project_name: str,
        status: DeploymentStatus,
        environment: Optional[str] = None,
    ) -> None: ...

    def notify_worker(self, worker_name: str, event: str) -> None: ...


def format_deployment_notification(
    project_name: str,
    status: DeploymentStatus,
    environment: Optional[str] = None,
) -> Optional[Tuple[str, str]]:
    """Return ``(title, body)`` for a deployment status, or None if not notifiable."""
    if status == DeploymentStatus.SUCCESS:
        body = f"{project_name} deployed successfully"
        if environment:
            body += f" to {environment}"
        return "Deployment Successful", body
    if status == DeploymentStatus.FAILURE:
        body = f"{project_name} deployment failed"
        if environment:
            body += f" on {environment}"
        return "Deployment Failed", body
    if status == DeploymentStatus.ACTIVE:
        return "Deployment Started", f"{project_name} deployment in progress"
    return None


def format_worker_notification(worker_name: str, event: str) -> Tuple[str, str]:
    return "Worker Update", f"{worker_name}: {event}"


class LoggingNotifier:
    """Delivers notifications to the application log."""

    def notify_deployment(
        self,
        project_name: str,
        status: DeploymentStatus,
        environment: Optional[str] = None,
    ) -> None:
        message = format_deployment_notification(project_name, status, environment)
        if message is None:
            return
        logger.info("%s: %s", *message)

    def notify_worker(self, worker_name: str, event: str) -> None:
        logger.info("%s: %s", *format_worker_notification(worker_name, event))


class SafeNotifier:
    """Wraps a notifier so delivery failures are logged instead of raised."""

    def __init__(self, inner: Notifier):
        self.inner = inner

    def notify_deployment(
        self,
        project_name: str,
        status: DeploymentStatus,
        environment: Optional[str] = None,
    ) -> None:
        try:
            self.inner.notify_deployment(project_name, status, environment)
        except Exception as exc:
            logger.error("Failed to send deployment notification: %s", exc)

    def notify_worker(self, worker_name: str, event: str) -> None:
        try:
            self.inner.notify_worker(worker_name, event)
        except Exception as exc:
            logger.error("Failed to send worker notification: %s", exc)
