from typing import Iterable, List, Optional

from sqlalchemy import func, or_, select

from .base import BaseRepository
from ..orm_models import Profile


class ProfileRepository(BaseRepository):

    def get(self, user_id: str) -> Optional[Profile]:
        if not user_id:
            return None
        return self.db.get(Profile, str(user_id))

    def get_by_email(self, email: str) -> Optional[Profile]:
        e = str(email or "").strip().lower()
        if not e:
            return None
        return self.db.scalars(select(Profile).where(func.lower(Profile.email) == e)).first()

    def get_by_qr(self, qr_code: str) -> Optional[Profile]:
        code = str(qr_code or "").strip()
        if not code:
            return None
        return self.db.scalars(select(Profile).where(Profile.qr_code == code)).first()

    def get_by_invite_token(self, token: str) -> Optional[Profile]:
        t = str(token or "").strip()
        if not t:
            return None
        return self.db.scalars(select(Profile).where(Profile.invite_token == t)).first()

    def list_by_roles(self, roles: Iterable[str]) -> List[Profile]:
        stmt = (
            select(Profile)
            .where(Profile.role.in_(list(roles)))
            .order_by(Profile.first_name, Profile.last_name, Profile.email)
        )
        return list(self.db.scalars(stmt).all())

    def get_many(self, user_ids: Iterable[str]) -> List[Profile]:
        ids = [str(u) for u in user_ids if u]
        if not ids:
            return []
        return list(self.db.scalars(select(Profile).where(Profile.user_id.in_(ids))).all())

    def search(
        self,
        q: str = "",
        *,
        role: Optional[str] = None,
        limit: int = 20,
        exact_uuid: Optional[str] = None,
    ) -> List[Profile]:
        """Case-insensitive match over names, e-mail and phone."""
        stmt = select(Profile)
        if role:
            stmt = stmt.where(Profile.role == role)
        term = str(q or "").strip()
        if term:
            like = f"%{term}%"
            conds = [
                Profile.first_name.ilike(like),
                Profile.last_name.ilike(like),
                Profile.email.ilike(like),
                Profile.phone.ilike(like),
            ]
            digits = "".join(ch for ch in term if ch.isdigit())
            if len(digits) >= 4 and digits != term:
                conds.append(Profile.phone.ilike(f"%{digits}%"))
            if exact_uuid:
                conds.append(Profile.user_id == exact_uuid)
            stmt = stmt.where(or_(*conds))
        stmt = stmt.order_by(Profile.created_at.desc(), Profile.email).limit(int(limit))
        return list(self.db.scalars(stmt).all())
