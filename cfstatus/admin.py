"""Profile management endpoints."""

from typing import Dict, List

from fastapi import APIRouter, HTTPException, Request
from starlette.responses import JSONResponse, Response

from cfstatus.models import Profile

profiles_router = APIRouter(prefix="/profiles", tags=["profiles"])


def _format_profile(profile: Profile, active_id: object) -> Dict[str, object]:
    return {
        "id": profile.id,
        "name": profile.name,
        "token_prefix": profile.token_prefix(),
        "active": profile.id == active_id,
    }


async def _read_profile_fields(request: Request) -> Dict[str, str]:
    body = await request.json()
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="JSON object body is required")
    name = body.get("name")
    api_token = body.get("api_token")
    if not isinstance(name, str) or not name.strip():
        raise HTTPException(status_code=400, detail="name is required")
    if not isinstance(api_token, str) or not api_token.strip():
        raise HTTPException(status_code=400, detail="api_token is required")
    if not api_token.strip().isascii():
        raise HTTPException(
            status_code=400, detail="api_token must contain only ASCII characters"
        )
    return {"name": name.strip(), "api_token": api_token.strip()}


@profiles_router.get("")
async def list_profiles(request: Request) -> List[Dict[str, object]]:
    """List stored profiles with their tokens masked."""
    profiles = request.app.state.profiles
    active_id = profiles.get_active_id()
    return [_format_profile(profile, active_id) for profile in profiles.list()]


@profiles_router.post("")
async def add_profile(request: Request) -> JSONResponse:
    profiles = request.app.state.profiles
    fields = await _read_profile_fields(request)
    profile = Profile.create(fields["name"], fields["api_token"])
    profiles.add(profile)
    return JSONResponse(
        content=_format_profile(profile, profiles.get_active_id()), status_code=201
    )


@profiles_router.put("/{profile_id}")
async def update_profile(request: Request, profile_id: str) -> Dict[str, object]:
    profiles = request.app.state.profiles
    fields = await _read_profile_fields(request)
    profile = Profile(id=profile_id, name=fields["name"], api_token=fields["api_token"])
    if not profiles.update(profile):
        raise HTTPException(status_code=404, detail=f"Profile {profile_id} not found")

    active_id = profiles.get_active_id()
    if active_id == profile_id:
        request.app.state.orchestrator.on_profile_changed()
    return _format_profile(profile, active_id)


@profiles_router.delete("/{profile_id}")
async def delete_profile(request: Request, profile_id: str) -> Response:
    profiles = request.app.state.profiles
    was_active = profiles.get_active_id() == profile_id
    if not profiles.delete(profile_id):
        raise HTTPException(status_code=404, detail=f"Profile {profile_id} not found")
    if was_active:
        request.app.state.orchestrator.on_profile_changed()
    return Response(status_code=204)


@profiles_router.post("/{profile_id}/activate")
async def activate_profile(request: Request, profile_id: str) -> Dict[str, str]:
    profiles = request.app.state.profiles
    if profiles.get(profile_id) is None:
        raise HTTPException(status_code=404, detail=f"Profile {profile_id} not found")
    profiles.set_active_id(profile_id)
    request.app.state.orchestrator.on_profile_changed()
    return {"active_profile_id": profile_id}


@profiles_router.post("/deactivate")
async def deactivate_profile(request: Request) -> Dict[str, str]:
    """Fall back to wrangler or environment credentials."""
    request.app.state.profiles.set_active_id(None)
    request.app.state.orchestrator.on_profile_changed()
    return {"message": "Using wrangler credentials"}
