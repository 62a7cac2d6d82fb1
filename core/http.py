"""Serverless request/response helpers shared by the api/ entrypoints."""

from __future__ import annotations

import hmac
import json
import re
from dataclasses import dataclass, field
from typing import Any

# Vinted marketplace pages, so the extension can call us from page context.
VINTED_ORIGIN_RE = re.compile(r"^https://(?:[\w-]+\.)?vinted\.[a-z]{2,3}$")


@dataclass
class Request:
    method: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None

    @classmethod
    def from_event(cls, event: Any) -> Request:
        """Normalize a serverless event dict (or an existing Request)."""
        if isinstance(event, Request):
            return event

        event = event or {}
        method = str(event.get("method") or event.get("httpMethod") or "GET").upper()
        headers = {str(k).lower(): str(v) for k, v in (event.get("headers") or {}).items()}

        body = event.get("body")
        if isinstance(body, (bytes, bytearray)):
            body = body.decode("utf-8", errors="replace")
        if isinstance(body, str):
            try:
                body = json.loads(body) if body.strip() else None
            except json.JSONDecodeError:
                body = None
        return cls(method=method, headers=headers, body=body)

    def json_field(self, name: str, default: Any = None) -> Any:
        if isinstance(self.body, dict):
            return self.body.get(name, default)
        return default


def json_response(status: int, body: Any = None, headers: dict[str, str] | None = None) -> dict[str, Any]:
    merged = {"content-type": "application/json"}
    if headers:
        merged.update(headers)
    return {
        "statusCode": status,
        "headers": merged,
        "body": json.dumps(body) if body is not None else "",
    }


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    if not header.startswith("Bearer "):
        return None
    token = header[len("Bearer "):].strip()
    return token or None


def has_secret(request: Request, secret: str) -> bool:
    """True when the request carries ``Bearer <secret>``. An unset secret locks the route."""
    if not secret:
        return False
    token = bearer_token(request) or ""
    return hmac.compare_digest(token.encode(), secret.encode())


def origin_allowed(origin: str | None, allowed_origins: list[str]) -> bool:
    if not origin:
        return True
    if origin in allowed_origins:
        return True
    return bool(VINTED_ORIGIN_RE.match(origin))


def cors_headers(origin: str | None) -> dict[str, str]:
    headers = {
        "access-control-allow-methods": "POST, OPTIONS",
        "access-control-allow-headers": "Content-Type, Authorization",
    }
    if origin:
        headers["access-control-allow-origin"] = origin
        headers["vary"] = "Origin"
    return headers
