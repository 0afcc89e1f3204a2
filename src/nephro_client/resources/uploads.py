"""Multipart file uploads: avatars, patient photos, documents."""

from __future__ import annotations

import json
from typing import IO, Any, Optional, Union

from nephro_client.resources.base import ResourceApi

FileContent = Union[bytes, IO[bytes]]


def form_fields(metadata: Optional[dict[str, Any]]) -> dict[str, str]:
    """Metadata as multipart form fields: ``None`` dropped, containers as JSON."""
    fields: dict[str, str] = {}
    for key, value in (metadata or {}).items():
        if value is None:
            continue
        if isinstance(value, (dict, list, tuple)):
            fields[key] = json.dumps(value)
        elif isinstance(value, bool):
            fields[key] = "true" if value else "false"
        else:
            fields[key] = str(value)
    return fields


class UploadsApi(ResourceApi):
    async def upload(
        self,
        path: str,
        content: FileContent,
        filename: str,
        metadata: Optional[dict[str, Any]] = None,
        content_type: Optional[str] = None,
    ) -> Any:
        """POST *content* as the ``file`` part with *metadata* as form fields."""
        part = (filename, content, content_type) if content_type else (filename, content)
        return await self._gateway.upload(path, {"file": part}, form_fields(metadata))

    async def avatar(self, content: FileContent, filename: str, user_id: Any) -> Any:
        return await self.upload("/users/avatar/", content, filename, {"user_id": user_id})

    async def patient_photo(self, content: FileContent, filename: str, patient_id: Any) -> Any:
        result = await self.upload("/patients/photo/", content, filename, {"patient_id": patient_id})
        self._log_access("Patient", patient_id, "update")
        return result

    async def document(
        self, content: FileContent, filename: str, metadata: Optional[dict[str, Any]] = None
    ) -> Any:
        return await self.upload("/documents/", content, filename, metadata)
