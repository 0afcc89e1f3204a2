"""User accounts, profiles and role assignment."""

from __future__ import annotations

from typing import Any, Optional

from nephro_client.audit import AuditTrail
from nephro_client.exceptions import NotLoggedIn
from nephro_client.gateway import RequestGateway
from nephro_client.normalizer import NormalizedList
from nephro_client.resources.base import ResourceApi
from nephro_client.session import SessionManager

RESOURCE_TYPE = "User"


class UsersApi(ResourceApi):
    """Admin-side user management plus the current user's own profile.

    Role changes are recorded as ``role_change`` security events.
    """

    def __init__(
        self,
        gateway: RequestGateway,
        session: SessionManager,
        *,
        audit: Optional[AuditTrail] = None,
        degrade_reads: bool = False,
        register_path: str = "/auth/register/",
    ) -> None:
        super().__init__(gateway, audit=audit, degrade_reads=degrade_reads)
        self._session = session
        self._register_path = register_path

    async def list(self, page: int = 1, page_size: int = 10) -> NormalizedList:
        return await self._list("/users/", {"page": page, "page_size": page_size})

    async def register(self, user: dict[str, Any]) -> Any:
        """Create an account on behalf of someone else (sent as given)."""
        return await self._gateway.post(self._register_path, user)

    async def get_profile(self, user_id: Any) -> Any:
        profile = await self._detail(f"/users/{user_id}/")
        if profile is not None:
            self._log_access(RESOURCE_TYPE, user_id, "read")
        return profile

    async def update_profile(self, user_id: Any, changes: dict[str, Any]) -> Any:
        updated = await self._gateway.patch(f"/users/{user_id}/", changes)
        self._log_access(RESOURCE_TYPE, user_id, "update")
        return updated

    async def get_current_profile(self) -> Any:
        return await self.get_profile(self._current_user_id())

    async def update_current_profile(self, changes: dict[str, Any]) -> Any:
        return await self.update_profile(self._current_user_id(), changes)

    async def make_admin(self, user_id: Any) -> Any:
        result = await self._gateway.post(f"/users/{user_id}/make-admin/")
        self._log_security(
            "role_change", {"user_id": str(user_id), "new_role": "admin", "action": "make_admin"}
        )
        return result

    async def link_patient(self, user_id: Any, patient_id: Any) -> Any:
        result = await self._gateway.post(f"/users/{user_id}/link-patient/{patient_id}/")
        self._log_security(
            "role_change",
            {"user_id": str(user_id), "patient_id": str(patient_id), "new_role": "patient", "action": "link_patient"},
        )
        return result

    async def link_institution(self, user_id: Any, institution_id: Any) -> Any:
        result = await self._gateway.post(f"/users/{user_id}/link-institution/{institution_id}/")
        self._log_security(
            "role_change",
            {
                "user_id": str(user_id),
                "institution_id": str(institution_id),
                "new_role": "institution_user",
                "action": "link_institution",
            },
        )
        return result

    async def list_patients(self, page: int = 1, page_size: int = 10, search: str = "") -> NormalizedList:
        """Patients available for linking, filtered by free-text *search*."""
        return await self._list("/patients/", {"page": page, "page_size": page_size, "search": search or None})

    async def list_organizations(self, page: int = 1, page_size: int = 10, search: str = "") -> NormalizedList:
        return await self._list("/organizations/", {"page": page, "page_size": page_size, "search": search or None})

    def _current_user_id(self) -> str:
        user_id = self._session.current().user_id
        if not user_id:
            raise NotLoggedIn("No user logged in")
        return user_id
