"""
Tuya Cloud Client
=================

Thin signed-request client for the Tuya OpenAPI.

Every request carries an HMAC-SHA256 signature over
``client_id [+ access_token] + t + METHOD\\nsha256(body)\\n\\npath``.
Access tokens are cached until one minute before they expire; a response
reporting an invalid or expired token triggers one fresh token fetch and one
retry of the original call.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

import requests

from app.domain.exceptions import AuthFailure, CommandRejected, DeviceUnreachable

logger = logging.getLogger(__name__)

TOKEN_PATH = "/v1.0/token?grant_type=1"
TOKEN_REFRESH_MARGIN_SECONDS = 60
# Vendor codes meaning "the access token you sent is no longer valid"
STALE_TOKEN_CODES = frozenset({1010, 1011})


def content_hash(body: str) -> str:
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def sign_request(
    client_id: str,
    secret: str,
    timestamp: str,
    method: str,
    path: str,
    body: str = "",
    access_token: str = "",
) -> str:
    """
    Compute the upper-case hex request signature.

    Args:
        client_id: Cloud project access id
        secret: Cloud project access secret
        timestamp: Milliseconds since epoch, as sent in the ``t`` header
        method: HTTP method
        path: Path including the query string
        body: Exact request body sent on the wire
        access_token: Empty for the token request itself
    """
    string_to_sign = f"{method.upper()}\n{content_hash(body)}\n\n{path}"
    message = f"{client_id}{access_token}{timestamp}{string_to_sign}"
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest().upper()


@dataclass
class CachedToken:
    value: str
    expires_at: float

    def valid(self, now: float) -> bool:
        return now < self.expires_at


class TuyaCloudClient:
    """Signed JSON client with access-token caching."""

    def __init__(
        self,
        base_url: str,
        access_id: str,
        access_secret: str,
        *,
        timeout: float = 5,
        session: requests.Session | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.access_id = access_id
        self._secret = access_secret
        self.timeout = timeout
        self._session = session or requests.Session()
        self._clock = clock
        self._token: CachedToken | None = None
        self._token_lock = threading.Lock()

    def _timestamp(self) -> str:
        return str(int(self._clock() * 1000))

    def _headers(self, method: str, path: str, body: str, access_token: str = "") -> dict[str, str]:
        timestamp = self._timestamp()
        headers = {
            "t": timestamp,
            "sign_method": "HMAC-SHA256",
            "client_id": self.access_id,
            "sign": sign_request(self.access_id, self._secret, timestamp, method, path, body, access_token),
            "Content-Type": "application/json",
        }
        if access_token:
            headers["access_token"] = access_token
        return headers

    def _send(self, method: str, path: str, body: str, headers: dict[str, str]) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(method, url, data=body or None, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise DeviceUnreachable(f"Tuya request {method} {path} failed: {exc}") from exc

        if response.status_code >= 500:
            raise DeviceUnreachable(f"Tuya returned HTTP {response.status_code} for {method} {path}")
        if response.status_code >= 400:
            raise CommandRejected(
                f"Tuya returned HTTP {response.status_code} for {method} {path}",
                detail={"body": response.text[:500]},
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise DeviceUnreachable(f"Tuya returned a non-JSON body for {method} {path}") from exc
        if not isinstance(data, dict):
            raise DeviceUnreachable(
                f"Tuya returned an unexpected {type(data).__name__} body for {method} {path}",
                detail={"body": response.text[:500]},
            )
        return data

    # --- Token -------------------------------------------------------------------
    def _fetch_token(self) -> CachedToken:
        if not self.access_id or not self._secret:
            raise AuthFailure("Tuya access id / secret are not configured")

        data = self._send("GET", TOKEN_PATH, "", self._headers("GET", TOKEN_PATH, ""))
        if not data.get("success"):
            raise AuthFailure(
                f"Token request failed: {data.get('msg', 'unknown error')}",
                detail={"code": data.get("code")},
            )
        result = data.get("result") or {}
        try:
            token = result["access_token"]
            expire_seconds = int(result["expire_time"])
        except (KeyError, TypeError, ValueError):
            raise AuthFailure("Token response is missing access_token/expire_time") from None

        logger.info("Obtained Tuya access token (valid %ss)", expire_seconds)
        return CachedToken(token, self._clock() + expire_seconds - TOKEN_REFRESH_MARGIN_SECONDS)

    def access_token(self, *, force_refresh: bool = False) -> str:
        with self._token_lock:
            if force_refresh or self._token is None or not self._token.valid(self._clock()):
                self._token = self._fetch_token()
            return self._token.value

    def invalidate_token(self) -> None:
        with self._token_lock:
            self._token = None

    # --- Business calls ----------------------------------------------------------
    def request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Perform a signed business request.

        Returns:
            The decoded response envelope (``success`` is true)

        Raises:
            DeviceUnreachable: network failure or vendor outage
            AuthFailure: no token could be obtained
            CommandRejected: the vendor answered ``success=false``
        """
        body = json.dumps(payload, separators=(",", ":")) if payload is not None else ""

        data = self._send(method, path, body, self._headers(method, path, body, self.access_token()))
        if not data.get("success") and data.get("code") in STALE_TOKEN_CODES:
            logger.info("Tuya token rejected (code %s); fetching a fresh one", data.get("code"))
            token = self.access_token(force_refresh=True)
            data = self._send(method, path, body, self._headers(method, path, body, token))

        if not data.get("success"):
            raise CommandRejected(
                f"Tuya {method} {path} failed: {data.get('msg', 'unknown error')}",
                detail={"code": data.get("code"), "msg": data.get("msg")},
            )
        return data

    def get(self, path: str) -> dict[str, Any]:
        return self.request("GET", path)

    def post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self.request("POST", path, payload)
