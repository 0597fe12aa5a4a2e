"""
Session Context

Explicit holder for the signed-in user and their bearer token. Created on
login, destroyed on logout and persisted in the offline store so a restart
can resume it. The token itself is issued elsewhere; this object only reads
and writes it.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from skinalyze.core.storage import Namespace, OfflineStore
from skinalyze.utils import get_logger, ValidationError

logger = get_logger(__name__)


class UserRole(str, Enum):
    CLINICIAN = "clinician"
    PATIENT   = "patient"


@dataclass(frozen=True)
class SessionUser:
    """Identity of the signed-in user."""
    user_id: str
    name: str
    role: UserRole
    email: Optional[str] = None
    patient_id: Optional[int] = None   # set for patient accounts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "role": self.role.value,
            "email": self.email,
            "patient_id": self.patient_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionUser":
        return cls(
            user_id=str(data["user_id"]),
            name=data["name"],
            role=UserRole(data["role"]),
            email=data.get("email"),
            patient_id=data.get("patient_id"),
        )


class SessionContext:
    """
    Current user and auth token.

    Without a store the session lives in memory only.
    """

    def __init__(self, store: Optional[OfflineStore] = None):
        self._store = store
        self._token: Optional[str] = None
        self._user: Optional[SessionUser] = None

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def user(self) -> Optional[SessionUser]:
        return self._user

    @property
    def is_active(self) -> bool:
        return self._user is not None

    @property
    def patient_id(self) -> Optional[int]:
        return self._user.patient_id if self._user else None

    def authorization_header(self) -> Dict[str, str]:
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    async def create(self, token: str, user: SessionUser) -> None:
        """Start a session (login)."""
        if not isinstance(token, str) or not token.strip():
            raise ValidationError("Session token is required", field="token")
        if not isinstance(user, SessionUser):
            raise ValidationError("Session user is required", field="user")
        self._token = token
        self._user = user
        await self._persist()
        logger.info(f"Session started for {user.role.value} {user.user_id}")

    async def destroy(self) -> None:
        """End the session (logout)."""
        user = self._user
        self._token = None
        self._user = None
        if self._store is not None:
            await self._store.delete(Namespace.SESSION)
        if user is not None:
            logger.info(f"Session ended for {user.role.value} {user.user_id}")

    async def restore(self) -> bool:
        """Load a persisted session; returns whether one was found."""
        if self._store is None:
            return self.is_active
        data = await self._store.get_json(Namespace.SESSION)
        if not data or not data.get("user"):
            return False
        try:
            self._user = SessionUser.from_dict(data["user"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding unreadable persisted session: {e}")
            await self._store.delete(Namespace.SESSION)
            return False
        self._token = data.get("token")
        logger.info(f"Session restored for {self._user.role.value} {self._user.user_id}")
        return True

    async def invalidate_token(self) -> None:
        """Drop the token after the backend rejected it; the user stays known."""
        if self._token is None:
            return
        self._token = None
        logger.warning("Auth token rejected by backend - cleared")
        await self._persist()

    async def _persist(self) -> None:
        if self._store is None:
            return
        await self._store.set_json(
            Namespace.SESSION,
            {
                "token": self._token,
                "user": self._user.to_dict() if self._user else None,
            },
        )
