"""JWT inspection and PKCE helpers."""

from __future__ import annotations

import base64
import hashlib
import secrets
from typing import Any

import jwt

from evesso.core.errors import MalformedTokenError


def unverified_header(token: str) -> dict[str, Any]:
    """Read a JWT header without verifying anything.

    Only used to pick the verification key; nothing in the header is trusted.

    Raises:
        MalformedTokenError: If the token is not a decodable JWS.
    """
    if not isinstance(token, str) or token.count(".") != 2:
        raise MalformedTokenError("Invalid JWT format: expected 3 dot-separated parts")
    try:
        return jwt.get_unverified_header(token)
    except jwt.exceptions.DecodeError as e:
        raise MalformedTokenError(f"Invalid JWT header: {e}") from e


def generate_code_verifier(length: int = 64) -> str:
    """Generate a PKCE code verifier.

    Args:
        length: Length of the verifier, clamped to 43-128 (RFC 7636).

    Returns:
        URL-safe random string.
    """
    length = max(43, min(128, length))
    num_bytes = (length * 3) // 4 + 1
    verifier = base64.urlsafe_b64encode(secrets.token_bytes(num_bytes)).decode("ascii")
    return verifier.rstrip("=")[:length]


def generate_code_challenge(code_verifier: str) -> str:
    """S256 code challenge for a verifier."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
