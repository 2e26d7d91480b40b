"""Data models for Cloudflare account resources and credentials."""

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from cfstatus.dates import parse_optional_datetime


def _require_str(data: Mapping[str, Any], key: str) -> str:
    value = data[key]
    if not isinstance(value, str):
        raise TypeError(f"{key} must be a string, got {type(value).__name__}")
    return value


def _opt_str(data: Mapping[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise TypeError(f"{key} must be a string, got {type(value).__name__}")
    return value


def _opt_int(data: Mapping[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{key} must be an integer, got {type(value).__name__}")
    return value


def _opt_bool(data: Mapping[str, Any], key: str) -> Optional[bool]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise TypeError(f"{key} must be a boolean, got {type(value).__name__}")
    return value


def _opt_str_list(data: Mapping[str, Any], key: str) -> Optional[List[str]]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, list):
        raise TypeError(f"{key} must be a list, got {type(value).__name__}")
    return [str(item) for item in value]


def _opt_date(data: Mapping[str, Any], key: str) -> Optional[datetime]:
    return parse_optional_datetime(data.get(key))


def _opt_nested(data: Mapping[str, Any], key: str, model: Any) -> Any:
    value = data.get(key)
    if value is None:
        return None
    return model.from_dict(value)


def _as_mapping(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise TypeError(f"expected an object, got {type(data).__name__}")
    return data


# ── credentials ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Credentials:
    """A resolved credential: an OAuth token, an API token, or nothing."""

    oauth_token: Optional[str] = None
    api_token: Optional[str] = None
    account_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.oauth_token is not None or self.api_token is not None

    @property
    def authorization_header(self) -> Optional[str]:
        token = self.oauth_token if self.oauth_token is not None else self.api_token
        if token is None:
            return None
        return f"Bearer {token}"


@dataclass
class Profile:
    """A named API token the user can switch to."""

    id: str
    name: str
    api_token: str

    @classmethod
    def create(cls, name: str, api_token: str) -> "Profile":
        return cls(id=str(uuid.uuid4()), name=name, api_token=api_token)

    @classmethod
    def from_dict(cls, data: Any) -> "Profile":
        data = _as_mapping(data)
        return cls(
            id=_require_str(data, "id"),
            name=_require_str(data, "name"),
            api_token=_require_str(data, "apiToken"),
        )

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name, "apiToken": self.api_token}

    def token_prefix(self) -> str:
        if len(self.api_token) <= 11:
            return "*" * len(self.api_token)
        return f"{self.api_token[:4]}...{self.api_token[-3:]}"


# ── envelope ─────────────────────────────────────────────────────────────────


@dataclass
class ResultInfo:
    page: Optional[int] = None
    per_page: Optional[int] = None
    count: Optional[int] = None
    total_count: Optional[int] = None
    total_pages: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ResultInfo":
        data = _as_mapping(data)
        return cls(
            page=_opt_int(data, "page"),
            per_page=_opt_int(data, "per_page"),
            count=_opt_int(data, "count"),
            total_count=_opt_int(data, "total_count"),
            total_pages=_opt_int(data, "total_pages"),
        )


# ── accounts ─────────────────────────────────────────────────────────────────


@dataclass
class AccountSettings:
    enforce_twofactor: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Any) -> "AccountSettings":
        data = _as_mapping(data)
        return cls(enforce_twofactor=_opt_bool(data, "enforce_twofactor"))


@dataclass
class Account:
    id: str
    name: str
    type: Optional[str] = None
    settings: Optional[AccountSettings] = None

    @classmethod
    def from_dict(cls, data: Any) -> "Account":
        data = _as_mapping(data)
        return cls(
            id=_require_str(data, "id"),
            name=_require_str(data, "name"),
            type=_opt_str(data, "type"),
            settings=_opt_nested(data, "settings", AccountSettings),
        )


# ── workers ──────────────────────────────────────────────────────────────────


@dataclass
class Worker:
    id: str
    etag: Optional[str] = None
    handlers: Optional[List[str]] = None
    modified_on: Optional[datetime] = None
    created_on: Optional[datetime] = None
    usage_model: Optional[str] = None
    compatibility_date: Optional[str] = None

    @property
    def name(self) -> str:
        return self.id

    @classmethod
    def from_dict(cls, data: Any) -> "Worker":
        data = _as_mapping(data)
        return cls(
            id=_require_str(data, "id"),
            etag=_opt_str(data, "etag"),
            handlers=_opt_str_list(data, "handlers"),
            modified_on=_opt_date(data, "modified_on"),
            created_on=_opt_date(data, "created_on"),
            usage_model=_opt_str(data, "usage_model"),
            compatibility_date=_opt_str(data, "compatibility_date"),
        )


@dataclass
class WorkerDetails:
    id: str
    etag: Optional[str] = None
    size: Optional[int] = None
    modified_on: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Any) -> "WorkerDetails":
        data = _as_mapping(data)
        return cls(
            id=_require_str(data, "id"),
            etag=_opt_str(data, "etag"),
            size=_opt_int(data, "size"),
            modified_on=_opt_date(data, "modified_on"),
        )


# ── pages ────────────────────────────────────────────────────────────────────


class DeploymentStatus(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELED = "canceled"
    UNKNOWN = "unknown"

    @classmethod
    def from_stage(cls, value: Optional[str]) -> "DeploymentStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    @property
    def display_name(self) -> str:
        return _STATUS_DISPLAY_NAMES[self]


_STATUS_DISPLAY_NAMES = {
    DeploymentStatus.IDLE: "Idle",
    DeploymentStatus.ACTIVE: "Deploying",
    DeploymentStatus.SUCCESS: "Success",
    DeploymentStatus.FAILURE: "Failed",
    DeploymentStatus.CANCELED: "Canceled",
    DeploymentStatus.UNKNOWN: "Unknown",
}


@dataclass
class PagesSourceConfig:
    owner: Optional[str] = None
    repo_name: Optional[str] = None
    production_branch: Optional[str] = None
    pr_comments_enabled: Optional[bool] = None
    deployments_enabled: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Any) -> "PagesSourceConfig":
        data = _as_mapping(data)
        return cls(
            owner=_opt_str(data, "owner"),
            repo_name=_opt_str(data, "repo_name"),
            production_branch=_opt_str(data, "production_branch"),
            pr_comments_enabled=_opt_bool(data, "pr_comments_enabled"),
            deployments_enabled=_opt_bool(data, "deployments_enabled"),
        )


@dataclass
class PagesSource:
    type: Optional[str] = None
    config: Optional[PagesSourceConfig] = None

    @classmethod
    def from_dict(cls, data: Any) -> "PagesSource":
        data = _as_mapping(data)
        return cls(
            type=_opt_str(data, "type"),
            config=_opt_nested(data, "config", PagesSourceConfig),
        )


@dataclass
class PagesBuildConfig:
    build_command: Optional[str] = None
    destination_dir: Optional[str] = None
    root_dir: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "PagesBuildConfig":
        data = _as_mapping(data)
        return cls(
            build_command=_opt_str(data, "build_command"),
            destination_dir=_opt_str(data, "destination_dir"),
            root_dir=_opt_str(data, "root_dir"),
        )


@dataclass
class DeploymentConfig:
    compatibility_date: Optional[str] = None
    compatibility_flags: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, data: Any) -> "DeploymentConfig":
        data = _as_mapping(data)
        return cls(
            compatibility_date=_opt_str(data, "compatibility_date"),
            compatibility_flags=_opt_str_list(data, "compatibility_flags"),
        )


@dataclass
class DeploymentConfigs:
    preview: Optional[DeploymentConfig] = None
    production: Optional[DeploymentConfig] = None

    @classmethod
    def from_dict(cls, data: Any) -> "DeploymentConfigs":
        data = _as_mapping(data)
        return cls(
            preview=_opt_nested(data, "preview", DeploymentConfig),
            production=_opt_nested(data, "production", DeploymentConfig),
        )


@dataclass
class TriggerMetadata:
    branch: Optional[str] = None
    commit_hash: Optional[str] = None
    commit_message: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "TriggerMetadata":
        data = _as_mapping(data)
        return cls(
            branch=_opt_str(data, "branch"),
            commit_hash=_opt_str(data, "commit_hash"),
            commit_message=_opt_str(data, "commit_message"),
        )


@dataclass
class DeploymentTrigger:
    type: Optional[str] = None
    metadata: Optional[TriggerMetadata] = None

    @classmethod
    def from_dict(cls, data: Any) -> "DeploymentTrigger":
        data = _as_mapping(data)
        return cls(
            type=_opt_str(data, "type"),
            metadata=_opt_nested(data, "metadata", TriggerMetadata),
        )


@dataclass
class DeploymentStage:
    name: Optional[str] = None
    status: Optional[str] = None
    started_on: Optional[datetime] = None
    ended_on: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Any) -> "DeploymentStage":
        data = _as_mapping(data)
        return cls(
            name=_opt_str(data, "name"),
            status=_opt_str(data, "status"),
            started_on=_opt_date(data, "started_on"),
            ended_on=_opt_date(data, "ended_on"),
        )


@dataclass
class PagesDeployment:
    id: str
    short_id: Optional[str] = None
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    environment: Optional[str] = None
    url: Optional[str] = None
    created_on: Optional[datetime] = None
    modified_on: Optional[datetime] = None
    deployment_trigger: Optional[DeploymentTrigger] = None
    latest_stage: Optional[DeploymentStage] = None
    stages: Optional[List[DeploymentStage]] = None
    build_config: Optional[PagesBuildConfig] = None
    source: Optional[PagesSource] = None
    is_skipped: Optional[bool] = None
    production_branch: Optional[str] = None

    @property
    def status(self) -> DeploymentStatus:
        if self.latest_stage is None:
            return DeploymentStatus.UNKNOWN
        return DeploymentStatus.from_stage(self.latest_stage.status)

    @property
    def branch(self) -> Optional[str]:
        trigger = self.deployment_trigger
        if trigger is None or trigger.metadata is None:
            return None
        return trigger.metadata.branch

    @classmethod
    def from_dict(cls, data: Any) -> "PagesDeployment":
        data = _as_mapping(data)
        stages = data.get("stages")
        if stages is not None and not isinstance(stages, list):
            raise TypeError("stages must be a list")
        return cls(
            id=_require_str(data, "id"),
            short_id=_opt_str(data, "short_id"),
            project_id=_opt_str(data, "project_id"),
            project_name=_opt_str(data, "project_name"),
            environment=_opt_str(data, "environment"),
            url=_opt_str(data, "url"),
            created_on=_opt_date(data, "created_on"),
            modified_on=_opt_date(data, "modified_on"),
            deployment_trigger=_opt_nested(data, "deployment_trigger", DeploymentTrigger),
            latest_stage=_opt_nested(data, "latest_stage", DeploymentStage),
            stages=(
                [DeploymentStage.from_dict(stage) for stage in stages]
                if stages is not None
                else None
            ),
            build_config=_opt_nested(data, "build_config", PagesBuildConfig),
            source=_opt_nested(data, "source", PagesSource),
            is_skipped=_opt_bool(data, "is_skipped"),
            production_branch=_opt_str(data, "production_branch"),
        )


@dataclass
class PagesProject:
    id: str
    name: str
    subdomain: Optional[str] = None
    domains: Optional[List[str]] = None
    source: Optional[PagesSource] = None
    build_config: Optional[PagesBuildConfig] = None
    deployment_configs: Optional[DeploymentConfigs] = None
    latest_deployment: Optional[PagesDeployment] = None
    canonical_deployment: Optional[PagesDeployment] = None
    production_branch: Optional[str] = None
    created_on: Optional[datetime] = None
    modified_on: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Any) -> "PagesProject":
        data = _as_mapping(data)
        return cls(
            id=_require_str(data, "id"),
            name=_require_str(data, "name"),
            subdomain=_opt_str(data, "subdomain"),
            domains=_opt_str_list(data, "domains"),
            source=_opt_nested(data, "source", PagesSource),
            build_config=_opt_nested(data, "build_config", PagesBuildConfig),
            deployment_configs=_opt_nested(
                data, "deployment_configs", DeploymentConfigs
            ),
            latest_deployment=_opt_nested(data, "latest_deployment", PagesDeployment),
            canonical_deployment=_opt_nested(
                data, "canonical_deployment", PagesDeployment
            ),
            production_branch=_opt_str(data, "production_branch"),
            created_on=_opt_date(data, "created_on"),
            modified_on=_opt_date(data, "modified_on"),
        )


# ── storage ──────────────────────────────────────────────────────────────────


@dataclass
class KVNamespace:
    id: str
    title: str
    supports_url_encoding: Optional[bool] = None

    @property
    def name(self) -> str:
        return self.title

    @classmethod
    def from_dict(cls, data: Any) -> "KVNamespace":
        data = _as_mapping(data)
        return cls(
            id=_require_str(data, "id"),
            title=_require_str(data, "title"),
            supports_url_encoding=_opt_bool(data, "supports_url_encoding"),
        )


@dataclass
class R2Bucket:
    name: str
    creation_date: Optional[datetime] = None
    location: Optional[str] = None

    @property
    def id(self) -> str:
        return self.name

    @classmethod
    def from_dict(cls, data: Any) -> "R2Bucket":
        data = _as_mapping(data)
        return cls(
            name=_require_str(data, "name"),
            creation_date=_opt_date(data, "creation_date"),
            location=_opt_str(data, "location"),
        )


@dataclass
class D1Database:
    uuid: str
    name: str
    version: Optional[str] = None
    num_tables: Optional[int] = None
    file_size: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def id(self) -> str:
        return self.uuid

    @classmethod
    def from_dict(cls, data: Any) -> "D1Database":
        data = _as_mapping(data)
        return cls(
            uuid=_require_str(data, "uuid"),
            name=_require_str(data, "name"),
            version=_opt_str(data, "version"),
            num_tables=_opt_int(data, "num_tables"),
            file_size=_opt_int(data, "file_size"),
            created_at=_opt_date(data, "created_at"),
        )


@dataclass
class QueueProducer:
    service: Optional[str] = None
    environment: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "QueueProducer":
        data = _as_mapping(data)
        return cls(
            service=_opt_str(data, "service"),
            environment=_opt_str(data, "environment"),
        )


@dataclass
class QueueConsumer:
    service: Optional[str] = None
    environment: Optional[str] = None
    dead_letter_queue: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "QueueConsumer":
        data = _as_mapping(data)
        return cls(
            service=_opt_str(data, "service"),
            environment=_opt_str(data, "environment"),
            dead_letter_queue=_opt_str(data, "dead_letter_queue"),
        )


@dataclass
class Queue:
    queue_id: str
    queue_name: str
    created_on: Optional[datetime] = None
    modified_on: Optional[datetime] = None
    producers: Optional[List[QueueProducer]] = None
    consumers: Optional[List[QueueConsumer]] = None
    producers_total_count: Optional[int] = None
    consumers_total_count: Optional[int] = None

    @property
    def id(self) -> str:
        return self.queue_id

    @property
    def name(self) -> str:
        return self.queue_name

    @classmethod
    def from_dict(cls, data: Any) -> "Queue":
        data = _as_mapping(data)
        producers = data.get("producers")
        consumers = data.get("consumers")
        return cls(
            queue_id=_require_str(data, "queue_id"),
            queue_name=_require_str(data, "queue_name"),
            created_on=_opt_date(data, "created_on"),
            modified_on=_opt_date(data, "modified_on"),
            producers=(
                [QueueProducer.from_dict(item) for item in producers]
                if producers is not None
                else None
            ),
            consumers=(
                [QueueConsumer.from_dict(item) for item in consumers]
                if consumers is not None
                else None
            ),
            producers_total_count=_opt_int(data, "producers_total_count"),
            consumers_total_count=_opt_int(data, "consumers_total_count"),
        )


# ── usage & activity ─────────────────────────────────────────────────────────


@dataclass
class UsageMetrics:
    """Account usage since the start of the current UTC day."""

    period_start: datetime
    period_end: datetime
    last_updated: datetime
    workers_requests: int = 0
    kv_reads: int = 0
    kv_writes: int = 0
    kv_deletes: int = 0
    kv_lists: int = 0
    d1_read_queries: int = 0
    d1_write_queries: int = 0
    d1_rows_read: int = 0
    d1_rows_written: int = 0


@dataclass
class ActivityItem:
    id: str
    kind: str
    name: str
    timestamp: Optional[datetime] = None
    status: Optional[DeploymentStatus] = None
    branch: Optional[str] = None
    url: Optional[str] = None


class Tab(str, Enum):
    OVERVIEW = "overview"
    WORKERS = "workers"
    PAGES = "pages"
    STORAGE = "storage"
