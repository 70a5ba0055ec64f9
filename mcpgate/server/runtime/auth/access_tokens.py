# mcpgate/server/runtime/auth/access_tokens.py
from __future__ import annotations

import secrets
from typing import Any

from pydantic import BaseModel, ConfigDict

from mcpgate.server.runtime.auth.tokens import TokenCodec
from mcpgate.server.runtime.exceptions import InvalidSignature


class SetupTokenInfo(BaseModel):
    """Fields of a setup token that the setup page may display."""

    model_config = ConfigDict(populate_by_name=True)

    projectId: str | None = None
    loginToken: str | None = None
    integrationName: str | None = None


class AccessTokenStore:
    """Non-durable id -> signed setup token lookup."""

    def __init__(self, codec: TokenCodec):
        self._codec = codec
        self._tokens: dict[str, str] = {}

    def issue(self, *, project_id: str | None, login_token: str, integration_name: str) -> str:
        """Sign a setup token and return the opaque id it is stored under."""
        info = SetupTokenInfo(projectId=project_id, loginToken=login_token, integrationName=integration_name)
        token = self._codec.sign({"payload": info.model_dump()})
        token_id = secrets.token_urlsafe(24)
        self._tokens[token_id] = token
        return token_id

    def get(self, token_id: str) -> str | None:
        return self._tokens.get(token_id)

    def __len__(self) -> int:
        return len(self._tokens)

    def resolve(self, token_id: str | None) -> SetupTokenInfo | None:
        """
        Look up, verify and decode a setup token.

        Returns None when the id is missing, unknown, or the token fails
        verification or carries no payload object.
        """
        if not token_id:
            return None
        token = self.get(token_id)
        if token is None:
            return None
        try:
            claims: dict[str, Any] = self._codec.verify(token)
        except InvalidSignature:
            return None
        payload = claims.get("payload")
        if not isinstance(payload, dict):
            return None
        return SetupTokenInfo.model_validate(payload)
