import asyncio
import base64
import json
from typing import List

import httpx
import pytest
import respx

from cfstatus.client import CloudflareClient
from cfstatus.config import Config
from cfstatus.diagnostics import DiagnosticsLog
from cfstatus.errors import (
    ApiError,
    DecodingErrorWithPreview,
    InvalidResponse,
    NetworkError,
    NotAuthenticated,
    TokenExpired,
    UnexpectedContentType,
)
from cfstatus.models import Credentials

BASE = "https://api.cloudflare.test/client/v4"
GRAPHQL = f"{BASE}/graphql"


class StaticCredentials:
    def __init__(self, credentials: Credentials):
        self.credentials = credentials
        self.calls = 0

    def resolve(self) -> Credentials:
        self.calls += 1
        return self.credentials


def make_config(**overrides) -> Config:
    values = dict(api_base_url=BASE, graphql_url=GRAPHQL, data_dir="/tmp/cfstatus-tests")
    values.update(overrides)
    return Config(**values)


def make_client(
    http_client: httpx.AsyncClient,
    credentials: Credentials = Credentials(api_token="test-token"),
    diagnostics=None,
    config: Config = None,
) -> CloudflareClient:
    return CloudflareClient(
        http_client,
        StaticCredentials(credentials),
        config or make_config(),
        diagnostics,
    )


def envelope(result, success=True, errors=None):
    return {
        "success": success,
        "errors": errors or [],
        "messages": [],
        "result": result,
    }


@pytest.mark.asyncio
@respx.mock
async def test_get_accounts_sends_bearer_token():
    captured: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(
            200,
            json={
                **envelope([{"id": "acc-1", "name": "Acme"}]),
                "result_info": {"page": 1, "per_page": 20, "total_count": 1},
            },
        )

    respx.get(f"{BASE}/accounts").mock(side_effect=handler)

    async with httpx.AsyncClient() as http:
        accounts = await make_client(http).get_accounts()

    assert [account.id for account in accounts] == ["acc-1"]
    sent = captured[0]
    assert sent.headers["authorization"] == "Bearer test-token"
    assert sent.headers["accept"] == "application/json"
    assert sent.headers["content-type"] == "application/json"


@pytest.mark.asyncio
@respx.mock
async def test_oauth_token_is_preferred():
    route = respx.get(f"{BASE}/accounts").mock(
        return_value=httpx.Response(200, json=envelope([]))
    )

    async with httpx.AsyncClient() as http:
        client = make_client(http, Credentials(oauth_token="oauth", api_token="api"))
        await client.get_accounts()

    assert route.calls[0].request.headers["authorization"] == "Bearer oauth"


@pytest.mark.asyncio
@respx.mock
async def test_unauthenticated_fails_before_network():
    async with httpx.AsyncClient() as http:
        client = make_client(http, Credentials())
        with pytest.raises(NotAuthenticated):
            await client.get_accounts()

    assert respx.calls.call_count == 0


@pytest.mark.asyncio
@respx.mock
async def test_http_401_is_not_authenticated_regardless_of_body():
    respx.get(f"{BASE}/accounts").mock(
        return_value=httpx.Response(401, json=envelope([]))
    )

    async with httpx.AsyncClient() as http:
        with pytest.raises(NotAuthenticated):
            await make_client(http).get_accounts()


@pytest.mark.asyncio
@respx.mock
async def test_html_success_response_is_unexpected_content_type():
    page = "<html>" + "x" * 500 + "</html>"
    respx.get(f"{BASE}/accounts").mock(return_value=httpx.Response(200, html=page))

    async with httpx.AsyncClient() as http:
        with pytest.raises(UnexpectedContentType) as excinfo:
            await make_client(http).get_accounts()

    error = excinfo.value
    assert error.content_type is not None and error.content_type.startswith("text/html")
    assert error.preview.startswith("<html>")
    assert len(error.preview.encode("utf-8")) <= 200
    assert "captive portal" in error.description


@pytest.mark.asyncio
@respx.mock
async def test_missing_content_type_is_unexpected_content_type():
    respx.get(f"{BASE}/accounts").mock(return_value=httpx.Response(200, content=b"ok"))

    async with httpx.AsyncClient() as http:
        with pytest.raises(UnexpectedContentType) as excinfo:
            await make_client(http).get_accounts()

    assert excinfo.value.content_type is None
    assert excinfo.value.preview == "ok"


@pytest.mark.asyncio
@respx.mock
async def test_non_json_error_status_is_api_error():
    respx.get(f"{BASE}/accounts").mock(
        return_value=httpx.Response(502, html="<h1>Bad gateway</h1>")
    )

    async with httpx.AsyncClient() as http:
        with pytest.raises(ApiError) as excinfo:
            await make_client(http).get_accounts()

    assert excinfo.value.message == "HTTP 502"


@pytest.mark.asyncio
@respx.mock
async def test_invalid_access_token_is_token_expired():
    respx.get(f"{BASE}/accounts").mock(
        return_value=httpx.Response(
            400,
            json=envelope(
                None,
                success=False,
                errors=[{"code": 9109, "message": "Invalid access token"}],
            ),
        )
    )

    async with httpx.AsyncClient() as http:
        with pytest.raises(TokenExpired):
            await make_client(http).get_accounts()


@pytest.mark.asyncio
@respx.mock
async def test_other_envelope_failures_are_api_errors():
    respx.get(f"{BASE}/accounts").mock(
        return_value=httpx.Response(
            200,
            json=envelope(
                None,
                success=False,
                errors=[{"code": 1000, "message": "quota exceeded"}],
            ),
        )
    )

    async with httpx.AsyncClient() as http:
        with pytest.raises(ApiError) as excinfo:
            await make_client(http).get_accounts()

    assert not isinstance(excinfo.value, TokenExpired)
    assert excinfo.value.message == "quota exceeded"


@pytest.mark.asyncio
@respx.mock
async def test_error_messages_are_joined():
    respx.get(f"{BASE}/accounts").mock(
        return_value=httpx.Response(
            200,
            json=envelope(
                None,
                success=False,
                errors=[
                    {"code": 1, "message": "first problem"},
                    {"code": 2, "message": "second problem"},
                ],
            ),
        )
    )

    async with httpx.AsyncClient() as http:
        with pytest.raises(ApiError) as excinfo:
            await make_client(http).get_accounts()

    assert excinfo.value.message == "first problem, second problem"


@pytest.mark.asyncio
@respx.mock
async def test_failure_without_messages_is_unknown_error():
    respx.get(f"{BASE}/accounts").mock(
        return_value=httpx.Response(200, json=envelope(None, success=False))
    )

    async with httpx.AsyncClient() as http:
        with pytest.raises(ApiError) as excinfo:
            await make_client(http).get_accounts()

    assert excinfo.value.message == "Unknown error"


@pytest.mark.asyncio
@respx.mock
async def test_success_without_result_is_invalid_response():
    respx.get(f"{BASE}/accounts").mock(
        return_value=httpx.Response(200, json=envelope(None))
    )

    async with httpx.AsyncClient() as http:
        with pytest.raises(InvalidResponse):
            await make_client(http).get_accounts()


@pytest.mark.asyncio
@respx.mock
async def test_schema_mismatch_is_decoding_error_with_preview():
    body = envelope([{"id": 123, "name": "x" * 400}])
    respx.get(f"{BASE}/accounts").mock(return_value=httpx.Response(200, json=body))

    async with httpx.AsyncClient() as http:
        with pytest.raises(DecodingErrorWithPreview) as excinfo:
            await make_client(http).get_accounts()

    error = excinfo.value
    assert isinstance(error.cause, TypeError)
    assert len(error.preview.encode("utf-8")) <= 300
    assert error.preview.startswith('{"success"')
    assert error.log_path is None


@pytest.mark.asyncio
@respx.mock
async def test_bad_date_fails_decoding():
    respx.get(f"{BASE}/accounts/acc-1/workers/scripts").mock(
        return_value=httpx.Response(
            200, json=envelope([{"id": "api", "modified_on": "last tuesday"}])
        )
    )

    async with httpx.AsyncClient() as http:
        with pytest.raises(DecodingErrorWithPreview):
            await make_client(http).get_workers("acc-1")


@pytest.mark.asyncio
@respx.mock
async def test_malformed_json_is_decoding_error():
    respx.get(f"{BASE}/accounts").mock(
        return_value=httpx.Response(
            200, content=b'{"success": tru', headers={"content-type": "application/json"}
        )
    )

    async with httpx.AsyncClient() as http:
        with pytest.raises(DecodingErrorWithPreview) as excinfo:
            await make_client(http).get_accounts()

    assert excinfo.value.preview == '{"success": tru'


@pytest.mark.asyncio
@respx.mock
async def test_transport_failure_is_network_error():
    respx.get(f"{BASE}/accounts").mock(side_effect=httpx.ConnectError("dns failure"))

    async with httpx.AsyncClient() as http:
        with pytest.raises(NetworkError) as excinfo:
            await make_client(http).get_accounts()

    assert isinstance(excinfo.value.cause, httpx.ConnectError)


@pytest.mark.asyncio
@respx.mock
async def test_timeout_is_network_error():
    respx.get(f"{BASE}/accounts").mock(side_effect=httpx.ReadTimeout("slow"))

    async with httpx.AsyncClient() as http:
        with pytest.raises(NetworkError):
            await make_client(http).get_accounts()


@pytest.mark.asyncio
async def test_total_resource_timeout_is_network_error():
    async def slow(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1)
        return httpx.Response(200, json=envelope([]))

    config = make_config(resource_timeout=0.01)
    async with httpx.AsyncClient(transport=httpx.MockTransport(slow)) as http:
        with pytest.raises(NetworkError) as excinfo:
            await make_client(http, config=config).get_accounts()

    assert isinstance(excinfo.value.cause, asyncio.TimeoutError)


@pytest.mark.asyncio
@respx.mock
async def test_non_ascii_token_is_not_authenticated():
    async with httpx.AsyncClient() as http:
        client = make_client(http, Credentials(api_token="t\u00f6ken"))
        with pytest.raises(NotAuthenticated):
            await client.get_accounts()
        with pytest.raises(NotAuthenticated):
            await client.graphql("query", {}, lambda d: d)

    assert respx.calls.call_count == 0


@pytest.mark.asyncio
@respx.mock
async def test_r2_bucket_list_is_unwrapped():
    respx.get(f"{BASE}/accounts/acc-1/r2/buckets").mock(
        return_value=httpx.Response(
            200, json=envelope({"buckets": [{"name": "a"}, {"name": "b"}]})
        )
    )

    async with httpx.AsyncClient() as http:
        buckets = await make_client(http).get_r2_buckets("acc-1")

    assert [bucket.name for bucket in buckets] == ["a", "b"]


@pytest.mark.asyncio
@respx.mock
async def test_resource_endpoints():
    respx.get(f"{BASE}/accounts/acc-1").mock(
        return_value=httpx.Response(200, json=envelope({"id": "acc-1", "name": "Acme"}))
    )
    respx.get(f"{BASE}/accounts/acc-1/workers/scripts/my-worker").mock(
        return_value=httpx.Response(
            200, json=envelope({"id": "my-worker", "size": 2048, "etag": "e1"})
        )
    )
    respx.get(f"{BASE}/accounts/acc-1/pages/projects").mock(
        return_value=httpx.Response(200, json=envelope([{"id": "p1", "name": "site"}]))
    )
    respx.get(f"{BASE}/accounts/acc-1/pages/projects/site/deployments").mock(
        return_value=httpx.Response(
            200,
            json=envelope(
                [{"id": "d1", "latest_stage": {"name": "deploy", "status": "active"}}]
            ),
        )
    )
    respx.get(f"{BASE}/accounts/acc-1/storage/kv/namespaces").mock(
        return_value=httpx.Response(200, json=envelope([{"id": "ns", "title": "CACHE"}]))
    )
    respx.get(f"{BASE}/accounts/acc-1/d1/database").mock(
        return_value=httpx.Response(200, json=envelope([{"uuid": "u1", "name": "main"}]))
    )
    respx.get(f"{BASE}/accounts/acc-1/queues").mock(
        return_value=httpx.Response(
            200, json=envelope([{"queue_id": "q1", "queue_name": "jobs"}])
        )
    )

    async with httpx.AsyncClient() as http:
        client = make_client(http)
        account = await client.get_account("acc-1")
        details = await client.get_worker_details("acc-1", "my-worker")
        projects = await client.get_pages_projects("acc-1")
        deployments = await client.get_pages_deployments("acc-1", "site")
        namespaces = await client.get_kv_namespaces("acc-1")
        databases = await client.get_d1_databases("acc-1")
        queues = await client.get_queues("acc-1")

    assert account.name == "Acme"
    assert details.size == 2048
    assert projects[0].name == "site"
    assert deployments[0].status.value == "active"
    assert namespaces[0].name == "CACHE"
    assert databases[0].id == "u1"
    assert queues[0].name == "jobs"


@pytest.mark.asyncio
@respx.mock
async def test_graphql_posts_query_and_variables():
    route = respx.post(GRAPHQL).mock(
        return_value=httpx.Response(200, json={"data": {"viewer": {}}, "errors": None})
    )

    async with httpx.AsyncClient() as http:
        data = await make_client(http).graphql(
            "query Q($a: string!) { viewer { a } }", {"a": "1"}, lambda d: d
        )

    assert data == {"viewer": {}}
    sent = json.loads(route.calls[0].request.content)
    assert sent == {"query": "query Q($a: string!) { viewer { a } }", "variables": {"a": "1"}}
    assert route.calls[0].request.headers["authorization"] == "Bearer test-token"


@pytest.mark.asyncio
@respx.mock
async def test_graphql_auth_errors_are_token_expired():
    respx.post(GRAPHQL).mock(
        return_value=httpx.Response(
            200, json={"data": None, "errors": [{"message": "authentication error"}]}
        )
    )

    async with httpx.AsyncClient() as http:
        with pytest.raises(TokenExpired):
            await make_client(http).graphql("query", {}, lambda d: d)


@pytest.mark.asyncio
@respx.mock
async def test_graphql_other_errors_are_api_errors():
    respx.post(GRAPHQL).mock(
        return_value=httpx.Response(
            200,
            json={"data": None, "errors": [{"message": "does not have access to the path"}]},
        )
    )

    async with httpx.AsyncClient() as http:
        with pytest.raises(ApiError) as excinfo:
            await make_client(http).graphql("query", {}, lambda d: d)

    assert excinfo.value.message == "does not have access to the path"


@pytest.mark.asyncio
@respx.mock
async def test_graphql_missing_data_is_invalid_response():
    respx.post(GRAPHQL).mock(return_value=httpx.Response(200, json={"data": None}))

    async with httpx.AsyncClient() as http:
        with pytest.raises(InvalidResponse):
            await make_client(http).graphql("query", {}, lambda d: d)


@pytest.mark.asyncio
@respx.mock
async def test_graphql_401_and_content_type_mirror_rest():
    respx.post(GRAPHQL).mock(
        side_effect=[
            httpx.Response(401, json={"errors": [{"message": "nope"}]}),
            httpx.Response(200, html="<html>portal</html>"),
        ]
    )

    async with httpx.AsyncClient() as http:
        client = make_client(http)
        with pytest.raises(NotAuthenticated):
            await client.graphql("query", {}, lambda d: d)
        with pytest.raises(UnexpectedContentType):
            await client.graphql("query", {}, lambda d: d)


@pytest.mark.asyncio
@respx.mock
async def test_diagnostics_entry_written_when_enabled(tmp_path):
    respx.get(f"{BASE}/accounts").mock(
        return_value=httpx.Response(200, json=envelope([{"name": "no id"}]))
    )
    diagnostics = DiagnosticsLog(tmp_path / "Diagnostics", lambda: True)

    async with httpx.AsyncClient() as http:
        with pytest.raises(DecodingErrorWithPreview) as excinfo:
            await make_client(http, diagnostics=diagnostics).get_accounts()
    diagnostics.close()

    error = excinfo.value
    assert error.log_path == str(diagnostics.path)
    assert str(diagnostics.path) in error.description
    content = diagnostics.path.read_text(encoding="utf-8")
    assert "endpoint: /accounts" in content
    assert "status: 200" in content
    assert "content-type: application/json" in content
    assert base64.b64encode(error.preview.encode("utf-8")).decode("ascii") in content


@pytest.mark.asyncio
@respx.mock
async def test_diagnostics_skipped_when_disabled(tmp_path):
    respx.get(f"{BASE}/accounts").mock(return_value=httpx.Response(200, html="<p>hi</p>"))
    diagnostics = DiagnosticsLog(tmp_path / "Diagnostics", lambda: False)

    async with httpx.AsyncClient() as http:
        with pytest.raises(UnexpectedContentType) as excinfo:
            await make_client(http, diagnostics=diagnostics).get_accounts()

    assert excinfo.value.log_path is None
    assert not diagnostics.path.exists()


@pytest.mark.asyncio
@respx.mock
async def test_diagnostics_failure_never_masks_the_error(tmp_path):
    blocker = tmp_path / "Diagnostics"
    blocker.write_text("a file where the directory should be")
    respx.get(f"{BASE}/accounts").mock(return_value=httpx.Response(200, html="<p>hi</p>"))
    diagnostics = DiagnosticsLog(blocker, lambda: True)

    async with httpx.AsyncClient() as http:
        with pytest.raises(UnexpectedContentType) as excinfo:
            await make_client(http, diagnostics=diagnostics).get_accounts()

    assert excinfo.value.log_path is None
