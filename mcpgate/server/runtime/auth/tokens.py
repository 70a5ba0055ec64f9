# mcpgate/server/runtime/auth/tokens.py
from __future__ import annotations

import time
from typing import Any, Mapping

import jwt

from mcpgate.server.runtime.auth.keys import SigningKey, build_signing_key, resolve_signing_key_material
from mcpgate.server.runtime.exceptions import InvalidSignature
from mcpgate.server.runtime.limits import DEFAULT_TOKEN_TTL_SECONDS


class TokenCodec:
    """
    Signs and verifies identity tokens (JWT).

    The user id travels in the registered `sub` claim. Key material is resolved
    once, when the codec is built; the codec itself holds no other state.
    """

    def __init__(self, key: SigningKey, *, ttl_seconds: int | None = DEFAULT_TOKEN_TTL_SECONDS):
        self._key = key
        self._ttl_seconds = ttl_seconds

    @classmethod
    def from_settings(
        cls,
        *,
        signing_key: str | None,
        signing_key_path: str | None,
        algorithm: str,
        ttl_seconds: int | None = DEFAULT_TOKEN_TTL_SECONDS,
    ) -> "TokenCodec":
        material = resolve_signing_key_material(signing_key, signing_key_path)
        return cls(build_signing_key(material, algorithm), ttl_seconds=ttl_seconds)

    @property
    def algorithm(self) -> str:
        return self._key.algorithm

    def sign(self, claims: Mapping[str, Any]) -> str:
        """Sign `claims`. A `userId` entry is carried as `sub`."""
        payload = dict(claims)
        user_id = payload.pop("userId", None)
        if user_id is not None:
            payload["sub"] = str(user_id)
        if "sub" not in payload and "payload" not in payload:
            raise ValueError("Token claims must include a userId")

        now = int(time.time())
        payload.setdefault("iat", now)
        if self._ttl_seconds is not None:
            payload.setdefault("exp", now + self._ttl_seconds)
        return jwt.encode(payload, self._key.signing, algorithm=self._key.algorithm)

    def sign_user(self, user_id: str) -> str:
        return self.sign({"userId": user_id})

    def verify(self, token: str) -> dict[str, Any]:
        try:
            return jwt.decode(token, self._key.verifying, algorithms=[self._key.algorithm])
        except jwt.InvalidTokenError as e:
            raise InvalidSignature(str(e) or "Invalid token") from e

    @staticmethod
    def decode(token: str) -> dict[str, Any] | None:
        """Unverified decode. For diagnostics only, never for authorization."""
        try:
            return jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
        except jwt.InvalidTokenError:
            return None

    @classmethod
    def user_id(cls, token: str) -> str | None:
        claims = cls.decode(token)
        if not claims:
            return None
        sub = claims.get("sub")
        return str(sub) if sub is not None else None
