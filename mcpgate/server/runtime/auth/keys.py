# mcpgate/server/runtime/auth/keys.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

_PEM_MARKER = "-----BEGIN"


@dataclass(frozen=True)
class SigningKey:
    """Key material for one JWT algorithm: what signs and what verifies."""

    algorithm: str
    signing: Any
    verifying: Any

    @property
    def asymmetric(self) -> bool:
        return not self.algorithm.upper().startswith("HS")


def _normalize(value: str) -> str:
    # Keys passed through env vars usually carry literal "\n" sequences.
    return value.replace("\\n", "\n").strip()


def load_key_from_file(path: str | Path) -> str:
    p = Path(path)
    if not p.exists():
        raise ValueError(f"Signing key file not found: {p}")
    return _normalize(p.read_text())


def resolve_signing_key_material(value: str | None, path: str | Path | None) -> str:
    """
    Resolve raw key material: an inline value wins over a key file.
    """
    if value:
        return _normalize(value)
    if path:
        return load_key_from_file(path)
    raise ValueError("No signing key configured (set MCPGATE_SIGNING_KEY or MCPGATE_SIGNING_KEY_PATH)")


def build_signing_key(material: str, algorithm: str) -> SigningKey:
    """
    Build the sign/verify pair for `algorithm`.

    HMAC algorithms use the material as a shared secret. Asymmetric algorithms
    expect a PEM private key; the public half is derived for verification.
    """
    if algorithm.upper().startswith("HS"):
        return SigningKey(algorithm=algorithm, signing=material, verifying=material)

    if _PEM_MARKER not in material:
        raise ValueError(f"Algorithm {algorithm} requires a PEM encoded private key")
    try:
        private_key: PrivateKeyTypes = serialization.load_pem_private_key(material.encode(), password=None)
    except (TypeError, ValueError) as e:
        raise ValueError("Invalid signing key contents") from e
    return SigningKey(algorithm=algorithm, signing=private_key, verifying=private_key.public_key())
