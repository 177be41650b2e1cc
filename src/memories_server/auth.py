"""Session resolution and signed upload credentials.

Both are thin collaborators: sessions are issued elsewhere and this module
only maps a presented token to a principal id; uploads go straight to the
media host, which checks the HMAC signature issued here.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import time
import uuid
from typing import Any, Dict, Mapping, Optional, Protocol

logger = logging.getLogger("memories.auth")

SESSION_COOKIE = "session_token"


class SessionResolver(Protocol):
    def resolve(self, request: Any) -> Optional[str]:
        """Return the authenticated principal id, or None."""
        ...


class TokenSessionResolver:
    """Resolve ``Authorization: Bearer <token>`` (or a session cookie) to a principal.

    ``tokens`` maps opaque session tokens to principal ids, typically from the
    ``auth.tokens`` config table.
    """

    def __init__(self, tokens: Optional[Mapping[str, Any]] = None, cookie_name: str = SESSION_COOKIE) -> None:
        self._tokens: Dict[str, str] = {str(k): str(v) for k, v in (tokens or {}).items() if v not in (None, "")}
        self.cookie_name = cookie_name

    def _token_from(self, request: Any) -> Optional[str]:
        header = request.headers.get("authorization") or ""
        scheme, _, value = header.partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            return value.strip()
        cookie = request.cookies.get(self.cookie_name)
        return cookie.strip() if cookie else None

    def resolve(self, request: Any) -> Optional[str]:
        token = self._token_from(request)
        if not token:
            return None
        return self._tokens.get(token)


class UploadSigner:
    """Issue short-lived signed parameters for direct media uploads.

    signature = hex(HMAC-SHA1(private_key, token + str(expire)))
    """

    def __init__(
        self,
        private_key: str = "",
        *,
        public_key: str = "",
        url_endpoint: str = "",
        expire_seconds: int = 2400,
    ) -> None:
        self.private_key = private_key or ""
        self.public_key = public_key or ""
        self.url_endpoint = url_endpoint or ""
        self.expire_seconds = int(expire_seconds)

    @property
    def configured(self) -> bool:
        return bool(self.private_key)

    def sign(self, token: str, expire: int) -> str:
        msg = f"{token}{expire}".encode("utf-8")
        return hmac.new(self.private_key.encode("utf-8"), msg, hashlib.sha1).hexdigest()

    def issue(self, principal_id: str, *, now: Optional[float] = None) -> Dict[str, Any]:
        if not self.configured:
            raise RuntimeError("upload.private_key is not configured")
        token = str(uuid.uuid4())
        expire = int(now if now is not None else time.time()) + self.expire_seconds
        params: Dict[str, Any] = {
            "token": token,
            "expire": expire,
            "signature": self.sign(token, expire),
        }
        if self.public_key:
            params["publicKey"] = self.public_key
        if self.url_endpoint:
            params["urlEndpoint"] = self.url_endpoint
        logger.info("Issued upload credentials for %s (expires %d)", principal_id, expire)
        return params
