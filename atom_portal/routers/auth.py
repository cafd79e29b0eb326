import logging

from fastapi import APIRouter, Depends, Request

from atom_portal.dependencies import get_auth_service, get_current_claims
from atom_portal.routers import read_json
from atom_portal.security.session_claims import clear_session, set_session_user
from atom_portal.services.auth_service import AuthService, session_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


def _login(request: Request, profile) -> None:
    set_session_user(request.session, profile.user_id)


@router.post("/login")
async def api_login(request: Request, svc: AuthService = Depends(get_auth_service)):
    data = await read_json(request)
    profile = svc.authenticate(data.get("email"), data.get("password"))
    _login(request, profile)
    logger.info(f"Login ok for {profile.user_id} ({profile.role})")
    return {"ok": True, "user": session_user(profile)}


@router.post("/logout")
async def api_logout(request: Request):
    clear_session(request.session)
    return {"ok": True}


@router.get("/session")
async def api_session(
    claims=Depends(get_current_claims),
    svc: AuthService = Depends(get_auth_service),
):
    profile = svc.require_profile(claims["user_id"])
    return {"ok": True, "user": session_user(profile)}


@router.post("/complete-invite")
async def api_complete_invite(request: Request, svc: AuthService = Depends(get_auth_service)):
    data = await read_json(request)
    profile = svc.complete_invite(data.get("token"), data.get("password"))
    _login(request, profile)
    return {"ok": True, "user": session_user(profile)}
