"""Request descriptors and the pure request/response stages the gateway composes.

Every stage takes a frozen value and returns a new one, so the order in
which headers and bodies change is visible in one place
(``DEFAULT_REQUEST_STAGES`` / ``DEFAULT_RESPONSE_STAGES``) and each stage
can be tested alone.
"""

from __future__ import annotations

import dataclasses
import json
from typing import Any, Callable, Optional, Sequence

import httpx

from nephro_client.fields import encode_query_params, sanitize_data


@dataclasses.dataclass
class RequestDescriptor:
    """One logical call. ``retried`` flips to True at most once."""

    method: str
    path: str
    body: Any = None
    params: Optional[dict[str, Any]] = None
    files: Optional[dict[str, Any]] = None
    requires_auth: bool = True
    retried: bool = False


@dataclasses.dataclass(frozen=True)
class OutboundRequest:
    """Concrete request handed to the transport."""

    method: str
    path: str
    headers: dict[str, str] = dataclasses.field(default_factory=dict)
    json: Any = None
    params: Optional[list[tuple[str, str]]] = None
    data: Optional[dict[str, Any]] = None
    files: Optional[dict[str, Any]] = None

    def with_header(self, name: str, value: str) -> OutboundRequest:
        return dataclasses.replace(self, headers={**self.headers, name: value})

    def without_header(self, name: str) -> OutboundRequest:
        headers = {k: v for k, v in self.headers.items() if k.lower() != name.lower()}
        return dataclasses.replace(self, headers=headers)


@dataclasses.dataclass(frozen=True)
class ApiResponse:
    """Transport response reduced to what the gateway and callers need."""

    status: int
    headers: dict[str, str] = dataclasses.field(default_factory=dict)
    content: bytes = b""
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


RequestStage = Callable[[OutboundRequest], OutboundRequest]
ResponseStage = Callable[[ApiResponse], ApiResponse]


def build_request(descriptor: RequestDescriptor) -> OutboundRequest:
    """Translate a descriptor into an unauthenticated outbound request."""
    if descriptor.files:
        # multipart: scalar fields travel as form data next to the files
        data = descriptor.body if isinstance(descriptor.body, dict) else None
        return OutboundRequest(
            method=descriptor.method.upper(),
            path=descriptor.path,
            data=data,
            files=dict(descriptor.files),
            params=_raw_params(descriptor.params),
        )
    return OutboundRequest(
        method=descriptor.method.upper(),
        path=descriptor.path,
        json=descriptor.body,
        params=_raw_params(descriptor.params),
    )


def _raw_params(params: Optional[dict[str, Any]]) -> Optional[list[tuple[str, str]]]:
    if not params:
        return None
    return list(params.items())


# ── Request stages ────────────────────────────────────────────────────


def sanitize_json_body(request: OutboundRequest) -> OutboundRequest:
    """Replace NaN/inf with ``None`` so the body serializes as valid JSON."""
    if request.json is None:
        return request
    return dataclasses.replace(request, json=sanitize_data(request.json))


def encode_params(request: OutboundRequest) -> OutboundRequest:
    """Drop ``None`` params, expand lists, stringify dates and objects."""
    if not request.params:
        return request
    return dataclasses.replace(request, params=encode_query_params(dict(request.params)))


def json_content_type(request: OutboundRequest) -> OutboundRequest:
    """JSON calls declare their content type; multipart leaves it to httpx."""
    if request.files:
        return request.without_header("Content-Type")
    return request.with_header("Content-Type", "application/json")


def bearer_auth(token: str | None) -> RequestStage:
    """Stage that sets (or, with no token, removes) the Authorization header."""

    def _apply(request: OutboundRequest) -> OutboundRequest:
        if not token:
            return request.without_header("Authorization")
        return request.with_header("Authorization", f"Bearer {token}")

    return _apply


DEFAULT_REQUEST_STAGES: tuple[RequestStage, ...] = (
    sanitize_json_body,
    encode_params,
    json_content_type,
)


# ── Response stages ───────────────────────────────────────────────────


def decode_json_body(response: ApiResponse) -> ApiResponse:
    """Parse the body as JSON when possible, else keep it as text."""
    if not response.content:
        return dataclasses.replace(response, body=None)
    text = response.content.decode("utf-8", errors="replace")
    try:
        body: Any = json.loads(text)
    except ValueError:
        body = text
    return dataclasses.replace(response, body=body)


DEFAULT_RESPONSE_STAGES: tuple[ResponseStage, ...] = (decode_json_body,)


def run_request_stages(request: OutboundRequest, stages: Sequence[RequestStage]) -> OutboundRequest:
    for stage in stages:
        request = stage(request)
    return request


def run_response_stages(response: ApiResponse, stages: Sequence[ResponseStage]) -> ApiResponse:
    for stage in stages:
        response = stage(response)
    return response


def from_httpx(response: httpx.Response) -> ApiResponse:
    return ApiResponse(
        status=response.status_code,
        headers=dict(response.headers),
        content=response.content,
    )
