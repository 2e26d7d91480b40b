"""Async client for the Cloudflare REST and GraphQL APIs."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Tuple,
    TypeVar,
)
from urllib.parse import quote

import httpx

from cfstatus.config import Config
from cfstatus.diagnostics import DiagnosticsLog
from cfstatus.errors import (
    ApiError,
    CloudflareAPIError,
    DecodingErrorWithPreview,
    InvalidResponse,
    NetworkError,
    NotAuthenticated,
    TokenExpired,
    UnexpectedContentType,
    is_auth_failure_message,
)
from cfstatus.models import (
    Account,
    Credentials,
    D1Database,
    KVNamespace,
    PagesDeployment,
    PagesProject,
    Queue,
    R2Bucket,
    ResultInfo,
    Worker,
    WorkerDetails,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONTENT_TYPE_PREVIEW_BYTES = 200
DECODING_PREVIEW_BYTES = 300


class CredentialProvider(Protocol):
    def resolve(self) -> Credentials: ...


@dataclass
class ApiEnvelope:
    """The ``{success, errors, messages, result, result_info}`` wrapper."""

    success: bool
    errors: List[Dict[str, Any]] = field(default_factory=list)
    messages: List[Any] = field(default_factory=list)
    result: Any = None
    result_info: Optional[ResultInfo] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ApiEnvelope":
        if not isinstance(data, Mapping):
            raise TypeError("response envelope must be a JSON object")
        success = data["success"]
        if not isinstance(success, bool):
            raise TypeError("success must be a boolean")
        errors = data.get("errors") or []
        messages = data.get("messages") or []
        if not isinstance(errors, list) or not isinstance(messages, list):
            raise TypeError("errors and messages must be lists")
        result_info = data.get("result_info")
        return cls(
            success=success,
            errors=[item for item in errors if isinstance(item, Mapping)],
            messages=messages,
            result=data.get("result"),
            result_info=(
                ResultInfo.from_dict(result_info) if result_info is not None else None
            ),
        )

    def error_message(self) -> str:
        return _join_messages(self.errors)


def _join_messages(errors: List[Any]) -> str:
    messages = [
        str(item.get("message"))
        for item in errors
        if isinstance(item, Mapping) and item.get("message")
    ]
    return ", ".join(messages)


def _failure_for(message: str) -> CloudflareAPIError:
    if message and is_auth_failure_message(message):
        return TokenExpired(message)
    return ApiError(message or "Unknown error")


def _as_list(value: Any) -> List[Any]:
    if not isinstance(value, list):
        raise TypeError(f"expected a list, got {type(value).__name__}")
    return value


def _list_of(model: Any) -> Callable[[Any], List[Any]]:
    def decode(result: Any) -> List[Any]:
        return [model.from_dict(item) for item in _as_list(result)]

    return decode


def _decode_r2_buckets(result: Any) -> List[R2Bucket]:
    # R2 wraps its list one level deeper than every other endpoint.
    if isinstance(result, Mapping):
        result = result["buckets"]
    return [R2Bucket.from_dict(item) for item in _as_list(result)]


def _preview(body: bytes, limit: int) -> str:
    return body[:limit].decode("utf-8", errors="replace")


def _is_json(content_type: Optional[str]) -> bool:
    return bool(content_type) and "json" in content_type.lower()


def build_http_client(config: Config) -> httpx.AsyncClient:
    """Create the shared transport with the per-request timeout applied."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(config.request_timeout),
        limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
        headers={"Accept": "application/json"},
    )


class CloudflareClient:
    """Authenticated access to the Cloudflare control-plane API.

    Every call resolves credentials first, so switching profiles takes effect
    on the next request. All failures surface as
    :class:`~cfstatus.errors.CloudflareAPIError` subclasses.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        credentials: CredentialProvider,
        config: Config,
        diagnostics: Optional[DiagnosticsLog] = None,
    ):
        self.http_client = http_client
        self.credentials = credentials
        self.config = config
        self.diagnostics = diagnostics

    # ── transport ────────────────────────────────────────────────────────────

    async def _send(
        self,
        method: str,
        url: str,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        credentials = await asyncio.to_thread(self.credentials.resolve)
        header = credentials.authorization_header
        if header is None:
            raise NotAuthenticated()

        headers = {
            "Authorization": header,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        try:
            response = await asyncio.wait_for(
                self.http_client.request(method, url, headers=headers, json=json_body),
                timeout=self.config.resource_timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.warning(
                "Timed out after %ss: %s %s", self.config.resource_timeout, method, url
            )
            raise NetworkError(exc) from exc
        except UnicodeEncodeError as exc:
            # Header values must be ASCII.
            logger.warning("Credential cannot be sent for %s %s: %s", method, url, exc)
            raise NotAuthenticated() from exc
        except httpx.InvalidURL as exc:
            logger.warning("Invalid request URL %s: %s", url, exc)
            raise NetworkError(exc) from exc
        except httpx.HTTPError as exc:
            logger.warning("Request error for %s %s: %s", method, url, exc)
            raise NetworkError(exc) from exc

        if response.status_code == 401:
            raise NotAuthenticated()
        return response

    async def _record(
        self, endpoint: str, response: httpx.Response, error: BaseException, body: bytes
    ) -> Optional[str]:
        if self.diagnostics is None:
            return None
        return await asyncio.to_thread(
            self.diagnostics.record,
            endpoint,
            response.status_code,
            response.headers.get("content-type"),
            error,
            body,
        )

    async def _decoding_error(
        self, endpoint: str, response: httpx.Response, cause: BaseException
    ) -> DecodingErrorWithPreview:
        body = response.content[:DECODING_PREVIEW_BYTES]
        log_path = await self._record(endpoint, response, cause, body)
        logger.error("Failed to decode %s: %s", endpoint, cause)
        return DecodingErrorWithPreview(
            cause, _preview(body, DECODING_PREVIEW_BYTES), log_path
        )

    async def _parse_json(self, endpoint: str, response: httpx.Response) -> Any:
        content_type = response.headers.get("content-type")
        if not _is_json(content_type):
            if not response.is_success:
                raise ApiError(f"HTTP {response.status_code}")
            body = response.content[:CONTENT_TYPE_PREVIEW_BYTES]
            error = UnexpectedContentType(
                content_type, _preview(body, CONTENT_TYPE_PREVIEW_BYTES)
            )
            error.log_path = await self._record(endpoint, response, error, body)
            logger.error(
                "Unexpected content type %s from %s", content_type, endpoint
            )
            raise error

        try:
            return response.json()
        except ValueError as exc:
            raise await self._decoding_error(endpoint, response, exc) from exc

    # ── REST ─────────────────────────────────────────────────────────────────

    async def _fetch_envelope(
        self, endpoint: str
    ) -> Tuple[ApiEnvelope, httpx.Response]:
        response = await self._send("GET", f"{self.config.api_base_url}{endpoint}")
        payload = await self._parse_json(endpoint, response)
        try:
            envelope = ApiEnvelope.from_dict(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise await self._decoding_error(endpoint, response, exc) from exc

        if not envelope.success:
            raise _failure_for(envelope.error_message())
        if envelope.result is None:
            raise InvalidResponse()
        return envelope, response

    async def _get(self, endpoint: str, decode: Callable[[Any], T]) -> T:
        envelope, response = await self._fetch_envelope(endpoint)
        try:
            return decode(envelope.result)
        except (KeyError, TypeError, ValueError) as exc:
            raise await self._decoding_error(endpoint, response, exc) from exc

    async def get_accounts(self) -> List[Account]:
        return await self._get("/accounts", _list_of(Account))

    async def get_account(self, account_id: str) -> Account:
        return await self._get(f"/accounts/{quote(account_id, safe='')}", Account.from_dict)

    async def get_workers(self, account_id: str) -> List[Worker]:
        return await self._get(
            f"/accounts/{quote(account_id, safe='')}/workers/scripts", _list_of(Worker)
        )

    async def get_worker_details(self, account_id: str, script_name: str) -> WorkerDetails:
        return await self._get(
            f"/accounts/{quote(account_id, safe='')}/workers/scripts/"
            f"{quote(script_name, safe='')}",
            WorkerDetails.from_dict,
        )

    async def get_pages_projects(self, account_id: str) -> List[PagesProject]:
        return await self._get(
            f"/accounts/{quote(account_id, safe='')}/pages/projects",
            _list_of(PagesProject),
        )

    async def get_pages_deployments(
        self, account_id: str, project_name: str
    ) -> List[PagesDeployment]:
        return await self._get(
            f"/accounts/{quote(account_id, safe='')}/pages/projects/"
            f"{quote(project_name, safe='')}/deployments",
            _list_of(PagesDeployment),
        )

    async def get_kv_namespaces(self, account_id: str) -> List[KVNamespace]:
        return await self._get(
            f"/accounts/{quote(account_id, safe='')}/storage/kv/namespaces",
            _list_of(KVNamespace),
        )

    async def get_r2_buckets(self, account_id: str) -> List[R2Bucket]:
        return await self._get(
            f"/accounts/{quote(account_id, safe='')}/r2/buckets", _decode_r2_buckets
        )

    async def get_d1_databases(self, account_id: str) -> List[D1Database]:
        return await self._get(
            f"/accounts/{quote(account_id, safe='')}/d1/database", _list_of(D1Database)
        )

    async def get_queues(self, account_id: str) -> List[Queue]:
        return await self._get(
            f"/accounts/{quote(account_id, safe='')}/queues", _list_of(Queue)
        )

    # ── GraphQL ──────────────────────────────────────────────────────────────

    async def graphql(
        self,
        query: str,
        variables: Dict[str, Any],
        decode: Callable[[Any], T],
    ) -> T:
        """POST a query document and decode its ``data`` member."""
        endpoint = "/graphql"
        response = await self._send(
            "POST",
            self.config.graphql_url,
            json_body={"query": query, "variables": variables},
        )
        payload = await self._parse_json(endpoint, response)
        if not isinstance(payload, Mapping):
            raise await self._decoding_error(
                endpoint, response, TypeError("GraphQL response must be a JSON object")
            )

        errors = payload.get("errors")
        if errors:
            if not isinstance(errors, list):
                errors = [errors]
            raise _failure_for(_join_messages(errors))

        data = payload.get("data")
        if data is None:
            raise InvalidResponse()
        try:
            return decode(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise await self._decoding_error(endpoint, response, exc) from exc
