from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import Response

from atom_portal.dependencies import get_current_claims, get_profile_service
from atom_portal.routers import read_json
from atom_portal.services.profile_service import ProfileService
from atom_portal.services.storage_service import MAX_ID_PHOTO_BYTES

router = APIRouter(prefix="/api/profile", tags=["profile"])


@router.get("")
async def api_get_profile(claims=Depends(get_current_claims), svc: ProfileService = Depends(get_profile_service)):
    return svc.get(claims["user_id"])


@router.patch("")
async def api_update_profile(
    request: Request,
    claims=Depends(get_current_claims),
    svc: ProfileService = Depends(get_profile_service),
):
    data = await read_json(request)
    return svc.update(claims["user_id"], data)


@router.get("/qr.png")
async def api_profile_qr(claims=Depends(get_current_claims), svc: ProfileService = Depends(get_profile_service)):
    png = svc.qr_image(claims["user_id"])
    return Response(content=png, media_type="image/png", headers={"Cache-Control": "no-store"})


@router.get("/subscriptions")
async def api_profile_subscriptions(
    claims=Depends(get_current_claims),
    svc: ProfileService = Depends(get_profile_service),
):
    return svc.subscriptions(claims["user_id"])


@router.post("/id-photo")
async def api_upload_id_photo(
    file: UploadFile = File(...),
    claims=Depends(get_current_claims),
    svc: ProfileService = Depends(get_profile_service),
):
    # One byte past the limit is enough to reject the upload
    content = await file.read(MAX_ID_PHOTO_BYTES + 1)
    return svc.upload_id_photo(claims["user_id"], content, file.content_type)


@router.get("/id-photo-url")
async def api_id_photo_url(claims=Depends(get_current_claims), svc: ProfileService = Depends(get_profile_service)):
    return svc.id_photo_url(claims["user_id"])
