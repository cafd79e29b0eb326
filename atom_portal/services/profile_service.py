import logging
from typing import Any, Dict, Optional

from atom_portal.errors import NotFoundError, ServiceError
from atom_portal.services import storage_service
from atom_portal.services.base import BaseService
from atom_portal.services.member_service import PATCHABLE_FIELDS, profile_dict
from atom_portal.services.qr_service import qr_png
from atom_portal.services.subscription_service import SubscriptionService
from atom_portal.utils import member_qr_code

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 120
MAX_PHONE_LENGTH = 50


class ProfileService(BaseService):
    """Self-service view of the signed-in user's own profile."""

    def get(self, user_id: str) -> Dict[str, Any]:
        profile = self.require_profile(user_id)
        data = profile_dict(profile)
        data["has_id_photo"] = bool(profile.id_photo_path)
        return {"ok": True, "profile": data}

    def update(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        profile = self.require_profile(user_id)
        updated = []
        for key in PATCHABLE_FIELDS:
            if key not in data:
                continue
            value = str(data.get(key) or "").strip() or None
            limit = MAX_PHONE_LENGTH if key == "phone" else MAX_NAME_LENGTH
            if value and len(value) > limit:
                raise ServiceError("INVALID_INPUT", details=f"{key} too long")
            setattr(profile, key, value)
            updated.append(key)
        if not updated:
            raise ServiceError("NO_FIELDS_TO_UPDATE")
        self.commit()
        return {"ok": True, "updated": updated, "profile": profile_dict(profile)}

    def qr_image(self, user_id: str) -> bytes:
        profile = self.require_profile(user_id)
        if not profile.qr_code:
            profile.qr_code = member_qr_code(profile.user_id)
            self.commit()
        return qr_png(profile.qr_code)

    def subscriptions(self, user_id: str) -> Dict[str, Any]:
        items = SubscriptionService(self.db, self._today).list_for_member(user_id)
        return {"ok": True, "items": items}

    # ========== ID photo ==========

    def upload_id_photo(self, user_id: str, content: Optional[bytes], content_type: Optional[str]) -> Dict[str, Any]:
        profile = self.require_profile(user_id)
        key = storage_service.upload_id_photo(profile.user_id, content, content_type)
        profile.id_photo_path = key
        self.commit()
        return {"ok": True, "path": key}

    def id_photo_url(self, user_id: str) -> Dict[str, Any]:
        profile = self.require_profile(user_id)
        if not profile.id_photo_path:
            raise NotFoundError("NO_PHOTO")
        url = storage_service.signed_url(profile.id_photo_path)
        return {"ok": True, "url": url, "expires_in": storage_service.SIGNED_URL_SECONDS}
