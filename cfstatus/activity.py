"""Recent-activity feed derived from workers and Pages projects."""

from datetime import datetime
from typing import List, Optional, Sequence

from cfstatus.models import ActivityItem, PagesProject, Worker


def _worker_item(worker: Worker) -> ActivityItem:
    return ActivityItem(
        id=f"worker-{worker.id}",
        kind="worker",
        name=worker.name,
        timestamp=worker.modified_on or worker.created_on,
    )


def _project_item(project: PagesProject) -> ActivityItem:
    deployment = project.latest_deployment
    timestamp: Optional[datetime] = None
    if deployment is not None:
        timestamp = deployment.created_on or deployment.modified_on
    return ActivityItem(
        id=f"pages-{project.id}",
        kind="pages",
        name=project.name,
        timestamp=timestamp or project.modified_on or project.created_on,
        status=deployment.status if deployment is not None else None,
        branch=deployment.branch if deployment is not None else None,
        url=deployment.url if deployment is not None else None,
    )


def build_recent_activity(
    workers: Sequence[Worker], projects: Sequence[PagesProject]
) -> List[ActivityItem]:
    """Newest first; items without any timestamp go last in input order."""
    items = [_worker_item(worker) for worker in workers]
    items.extend(_project_item(project) for project in projects)

    dated = [item for item in items if item.timestamp is not None]
    undated = [item for item in items if item.timestamp is None]
    dated.sort(key=lambda item: item.timestamp, reverse=True)
    return dated + undated
