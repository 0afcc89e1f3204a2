"""Tests for request/response stages: each stage is a pure transform."""

from __future__ import annotations

from datetime import date

from nephro_client.pipeline import (
    DEFAULT_REQUEST_STAGES,
    ApiResponse,
    OutboundRequest,
    RequestDescriptor,
    bearer_auth,
    build_request,
    decode_json_body,
    encode_params,
    json_content_type,
    run_request_stages,
    sanitize_json_body,
)


class TestBuildRequest:
    def test_json_request(self) -> None:
        request = build_request(RequestDescriptor("post", "/patients/", body={"gender": "male"}, params={"a": 1}))
        assert request.method == "POST"
        assert request.json == {"gender": "male"}
        assert request.files is None
        assert request.params == [("a", 1)]

    def test_multipart_request(self) -> None:
        descriptor = RequestDescriptor("POST", "/documents/", body={"category": "lab"}, files={"file": ("a.txt", b"x")})
        request = build_request(descriptor)
        assert request.json is None
        assert request.data == {"category": "lab"}
        assert request.files == {"file": ("a.txt", b"x")}


class TestRequestStages:
    def test_sanitize_replaces_nan(self) -> None:
        request = OutboundRequest("POST", "/x", json={"a": float("inf"), "b": [1.5, float("nan")]})
        assert sanitize_json_body(request).json == {"a": None, "b": [1.5, None]}

    def test_encode_params(self) -> None:
        request = OutboundRequest(
            "GET",
            "/x",
            params=[("ids", [1, 2]), ("skip", None), ("on", date(2024, 3, 1)), ("active", True)],
        )
        assert encode_params(request).params == [
            ("ids", "1"),
            ("ids", "2"),
            ("on", "2024-03-01"),
            ("active", "true"),
        ]

    def test_json_content_type(self) -> None:
        assert json_content_type(OutboundRequest("GET", "/x")).headers == {"Content-Type": "application/json"}

    def test_multipart_drops_content_type(self) -> None:
        request = OutboundRequest("POST", "/x", headers={"content-type": "application/json"}, files={"f": b""})
        assert json_content_type(request).headers == {}

    def test_bearer_auth_sets_and_removes(self) -> None:
        request = bearer_auth("abc")(OutboundRequest("GET", "/x"))
        assert request.headers["Authorization"] == "Bearer abc"
        assert "Authorization" not in bearer_auth(None)(request).headers

    def test_stages_do_not_mutate_input(self) -> None:
        original = OutboundRequest("POST", "/x", json={"a": float("nan")})
        result = run_request_stages(original, DEFAULT_REQUEST_STAGES)
        assert original.headers == {}
        assert result.headers == {"Content-Type": "application/json"}
        assert result.json == {"a": None}


class TestDecodeJsonBody:
    def test_json(self) -> None:
        assert decode_json_body(ApiResponse(200, content=b'{"a": 1}')).body == {"a": 1}

    def test_text(self) -> None:
        assert decode_json_body(ApiResponse(500, content=b"Bad Gateway")).body == "Bad Gateway"

    def test_empty(self) -> None:
        assert decode_json_body(ApiResponse(204)).body is None

    def test_ok(self) -> None:
        assert ApiResponse(201).ok is True
        assert ApiResponse(401).ok is False
