"""Local control service exposing the Cloudflare status core over HTTP."""

import logging
from contextlib import asynccontextmanager
from typing import Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from starlette.responses import JSONResponse

from cfstatus.admin import profiles_router
from cfstatus.client import CloudflareClient, build_http_client
from cfstatus.config import load_config
from cfstatus.credentials import CredentialResolver
from cfstatus.diagnostics import (
    DIAGNOSTICS_PREF_KEY,
    DiagnosticsLog,
    preference_toggle,
)
from cfstatus.models import Tab
from cfstatus.notifications import LoggingNotifier
from cfstatus.orchestrator import DASHBOARD_SECTIONS, RefreshOrchestrator
from cfstatus.profiles import ProfileStore
from cfstatus.stores import JsonPreferenceStore, KeyringSecretStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the services on startup and tear them down on shutdown."""
    config = load_config()

    logging.basicConfig(level=getattr(logging, config.log_level.upper(), logging.INFO))

    preferences = JsonPreferenceStore(config.preferences_path)
    profiles = ProfileStore(KeyringSecretStore(config.keyring_service), preferences)
    resolver = CredentialResolver(profiles)
    diagnostics = DiagnosticsLog(
        config.diagnostics_dir,
        preference_toggle(preferences, config.diagnostics_enabled),
    )
    http_client = build_http_client(config)
    client = CloudflareClient(http_client, resolver, config, diagnostics)
    orchestrator = RefreshOrchestrator(
        client, profiles, resolver, preferences, LoggingNotifier(), config
    )

    app.state.config = config
    app.state.preferences = preferences
    app.state.profiles = profiles
    app.state.diagnostics = diagnostics
    app.state.orchestrator = orchestrator

    orchestrator.check_authentication()
    logger.info("Cloudflare status service started on %s:%d", config.host, config.port)

    yield

    await orchestrator.shutdown()
    await http_client.aclose()
    diagnostics.close()
    logger.info("Cloudflare status service stopped")


app = FastAPI(title="Cloudflare Status", lifespan=lifespan)

app.include_router(profiles_router)


@app.get("/")
async def root(request: Request) -> Dict[str, object]:
    state = request.app.state.orchestrator.state
    return {
        "service": "Cloudflare Status",
        "authenticated": state.is_authenticated,
        "loading": state.is_loading,
    }


@app.get("/health")
async def health_check(request: Request) -> Dict[str, object]:
    state = request.app.state.orchestrator.state
    return {
        "status": "healthy",
        "authenticated": state.is_authenticated,
        "last_refresh": state.last_refresh,
        "error": state.error,
    }


@app.get("/state")
async def get_state(request: Request) -> JSONResponse:
    """Full snapshot of the application state."""
    orchestrator = request.app.state.orchestrator
    snapshot = jsonable_encoder(orchestrator.store.snapshot())
    snapshot["dashboard_urls"] = {
        section: orchestrator.dashboard_url(section) for section in DASHBOARD_SECTIONS
    }
    return JSONResponse(content=snapshot)


@app.post("/refresh", status_code=202)
async def refresh(request: Request) -> Dict[str, str]:
    orchestrator = request.app.state.orchestrator
    if not orchestrator.state.is_authenticated:
        orchestrator.check_authentication()
    else:
        orchestrator.request_refresh()
    return {"status": "refreshing"}


@app.post("/tab/{tab}")
async def select_tab(request: Request, tab: str) -> Dict[str, str]:
    try:
        selected = Tab(tab)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown tab {tab}")
    request.app.state.orchestrator.set_tab(selected)
    return {"tab": selected.value}


@app.post("/accounts/{account_id}/select", status_code=202)
async def select_account(request: Request, account_id: str) -> Dict[str, str]:
    request.app.state.orchestrator.select_account(account_id)
    return {"selected_account_id": account_id}


@app.post("/popover/shown")
async def popover_shown(request: Request) -> Dict[str, bool]:
    request.app.state.orchestrator.start_auto_refresh()
    return {"auto_refresh": True}


@app.post("/popover/hidden")
async def popover_hidden(request: Request) -> Dict[str, bool]:
    request.app.state.orchestrator.stop_auto_refresh()
    return {"auto_refresh": False}


@app.post("/diagnostics")
async def set_diagnostics(request: Request) -> Dict[str, object]:
    """Toggle response diagnostics capture. Body: {"enabled": true}"""
    body = await request.json()
    enabled = body.get("enabled") if isinstance(body, dict) else None
    if not isinstance(enabled, bool):
        raise HTTPException(status_code=400, detail="enabled must be a boolean")
    request.app.state.preferences.set(
        DIAGNOSTICS_PREF_KEY, "true" if enabled else "false"
    )
    return {"enabled": enabled, "log_path": str(request.app.state.diagnostics.path)}


def run() -> None:
    """Console entry point."""
    import uvicorn

    config = load_config()
    uvicorn.run("cfstatus.main:app", host=config.host, port=config.port)
