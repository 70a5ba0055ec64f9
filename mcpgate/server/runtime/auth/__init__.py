"""Token signing, verification and setup-token lookup."""

from .access_tokens import AccessTokenStore, SetupTokenInfo
from .keys import SigningKey, build_signing_key, resolve_signing_key_material
from .tokens import TokenCodec

__all__ = (
    "AccessTokenStore",
    "SetupTokenInfo",
    "SigningKey",
    "TokenCodec",
    "build_signing_key",
    "resolve_signing_key_material",
)
