"""Data model for provider metadata, signing keys and verified claims."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import jwt

from evesso.core.config import EC_ALGORITHMS, RSA_ALGORITHMS
from evesso.core.errors import MalformedProviderResponseError, MalformedTokenError
from evesso.core.logging import redact_sensitive


def _require_str(data: dict[str, Any], key: str, what: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise MalformedProviderResponseError(f"{what} is missing string field '{key}'")
    return value


@dataclass(frozen=True, repr=False)
class AuthenticationRequest:
    """Login URL and the CSRF state bound to it.

    The caller stores ``state`` (and ``code_verifier`` when PKCE is used) in
    its session and compares it against the callback.
    """

    login_url: str
    state: str
    code_verifier: str | None = None

    def __repr__(self) -> str:
        return f"AuthenticationRequest(login_url={redact_sensitive(self.login_url)!r})"


@dataclass(frozen=True)
class AccessToken:
    """Token endpoint response."""

    access_token: str = field(repr=False)
    token_type: str
    expires_in: int | None = None
    refresh_token: str | None = field(default=None, repr=False)
    scope: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True)
class ProviderMetadata:
    """Subset of the provider's discovery document."""

    issuer: str
    jwks_uri: str
    authorization_endpoint: str | None = None
    token_endpoint: str | None = None
    revocation_endpoint: str | None = None
    code_challenge_methods_supported: tuple[str, ...] = ()
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Any) -> ProviderMetadata:
        """Parse a discovery document.

        Raises:
            MalformedProviderResponseError: If ``issuer`` or ``jwks_uri`` is missing.
        """
        if not isinstance(data, dict):
            raise MalformedProviderResponseError("Provider metadata is not a JSON object")
        return cls(
            issuer=_require_str(data, "issuer", "Provider metadata"),
            jwks_uri=_require_str(data, "jwks_uri", "Provider metadata"),
            authorization_endpoint=data.get("authorization_endpoint"),
            token_endpoint=data.get("token_endpoint"),
            revocation_endpoint=data.get("revocation_endpoint"),
            code_challenge_methods_supported=tuple(data.get("code_challenge_methods_supported") or ()),
            raw=data,
        )


@dataclass(frozen=True)
class RSASigningKey:
    """RSA public key from a JWKS (RS* and PS* algorithms)."""

    algorithm: str
    key_id: str | None
    modulus: str
    exponent: str
    usage: str | None = None
    key_type: str = "RSA"

    def to_jwk(self) -> dict[str, Any]:
        jwk: dict[str, Any] = {"kty": self.key_type, "alg": self.algorithm, "n": self.modulus, "e": self.exponent}
        if self.key_id:
            jwk["kid"] = self.key_id
        if self.usage:
            jwk["use"] = self.usage
        return jwk

    def public_key(self) -> Any:
        """Build the cryptography public key object."""
        return jwt.PyJWK(self.to_jwk(), algorithm=self.algorithm).key


@dataclass(frozen=True)
class ECSigningKey:
    """Elliptic-curve public key from a JWKS (ES* algorithms)."""

    algorithm: str
    key_id: str | None
    curve: str
    x: str
    y: str
    usage: str | None = None
    key_type: str = "EC"

    def to_jwk(self) -> dict[str, Any]:
        jwk: dict[str, Any] = {
            "kty": self.key_type,
            "alg": self.algorithm,
            "crv": self.curve,
            "x": self.x,
            "y": self.y,
        }
        if self.key_id:
            jwk["kid"] = self.key_id
        if self.usage:
            jwk["use"] = self.usage
        return jwk

    def public_key(self) -> Any:
        """Build the cryptography public key object."""
        return jwt.PyJWK(self.to_jwk(), algorithm=self.algorithm).key


SigningKey = RSASigningKey | ECSigningKey


def parse_signing_key(data: Any) -> SigningKey | None:
    """Build a SigningKey from one JWK entry, tagged by its ``alg``.

    Returns:
        The key, or None when its algorithm is not one we verify with.

    Raises:
        MalformedProviderResponseError: If a supported key lacks its key material.
    """
    if not isinstance(data, dict):
        raise MalformedProviderResponseError("JWKS entry is not a JSON object")

    alg = data.get("alg")
    kid = data.get("kid")
    if kid is not None and not isinstance(kid, str):
        raise MalformedProviderResponseError(f"JWKS entry has non-string kid: {kid!r}")

    if alg in RSA_ALGORITHMS:
        return RSASigningKey(
            algorithm=alg,
            key_id=kid,
            modulus=_require_str(data, "n", f"{alg} key"),
            exponent=_require_str(data, "e", f"{alg} key"),
            usage=data.get("use"),
            key_type=data.get("kty", "RSA"),
        )
    if alg in EC_ALGORITHMS:
        return ECSigningKey(
            algorithm=alg,
            key_id=kid,
            curve=_require_str(data, "crv", f"{alg} key"),
            x=_require_str(data, "x", f"{alg} key"),
            y=_require_str(data, "y", f"{alg} key"),
            usage=data.get("use"),
            key_type=data.get("kty", "EC"),
        )
    return None


@dataclass(frozen=True)
class KeySet:
    """A full JWKS snapshot and the cache clock reading when it was fetched."""

    keys: tuple[SigningKey, ...]
    fetched_at: float
    skip_unresolved: bool = False

    def is_stale(self, ttl: float, now: float) -> bool:
        """Check whether the set is older than ``ttl`` seconds."""
        return now - self.fetched_at > ttl


_REQUIRED_CLAIMS = ("sub", "name", "iss", "aud", "iat", "exp", "jti")

_KNOWN_CLAIMS = frozenset(
    {*_REQUIRED_CLAIMS, "scp", "kid", "azp", "tenant", "tier", "region", "owner"}
)


def _timestamp(payload: dict[str, Any], claim: str) -> datetime:
    value = payload[claim]
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise MalformedTokenError(f"Claim '{claim}' must be a numeric timestamp")
    try:
        return datetime.fromtimestamp(value, tz=UTC)
    except (OverflowError, OSError, ValueError) as e:
        raise MalformedTokenError(f"Claim '{claim}' is not a representable timestamp: {value}") from e


def _optional_str(payload: dict[str, Any], claim: str) -> str | None:
    value = payload.get(claim)
    if value is not None and not isinstance(value, str):
        raise MalformedTokenError(f"Claim '{claim}' must be a string")
    return value


def _scopes(value: Any) -> frozenset[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return frozenset(value.split())
    if isinstance(value, list) and all(isinstance(s, str) for s in value):
        return frozenset(value)
    raise MalformedTokenError("Claim 'scp' must be a string or a list of strings")


def extract_principal_id(subject: str) -> int:
    """Extract the numeric id from a ``<namespace>:<type>:<id>`` subject.

    >>> extract_principal_id("CHARACTER:EVE:12345")
    12345

    Raises:
        MalformedTokenError: If the subject does not have that shape.
    """
    parts = subject.split(":")
    if len(parts) != 3:
        raise MalformedTokenError(f"Subject '{subject}' is not of the form '<namespace>:<type>:<id>'")
    try:
        return int(parts[2])
    except ValueError as e:
        raise MalformedTokenError(f"Subject '{subject}' does not end in a numeric id") from e


@dataclass(frozen=True)
class IdentityClaims:
    """Claims of a token that passed full verification."""

    subject: str
    name: str
    issuer: str
    audience: str | list[str]
    issued_at: datetime
    expires_at: datetime
    token_id: str
    scopes: frozenset[str] | None = None

    # Provider-specific claims
    key_id: str | None = None
    authorized_party: str | None = None
    tenant: str | None = None
    tier: str | None = None
    region: str | None = None
    owner: str | None = None

    extra: dict[str, Any] = field(default_factory=dict, compare=False)
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> IdentityClaims:
        """Build claims from a verified payload.

        Raises:
            MalformedTokenError: If a required claim is missing or has the wrong type.
        """
        missing = [claim for claim in _REQUIRED_CLAIMS if claim not in payload]
        if missing:
            raise MalformedTokenError(f"Token is missing required claims: {', '.join(missing)}")

        for claim in ("sub", "name", "iss", "jti"):
            if not isinstance(payload[claim], str):
                raise MalformedTokenError(f"Claim '{claim}' must be a string")

        audience = payload["aud"]
        if not isinstance(audience, str) and not (
            isinstance(audience, list) and all(isinstance(a, str) for a in audience)
        ):
            raise MalformedTokenError("Claim 'aud' must be a string or a list of strings")

        return cls(
            subject=payload["sub"],
            name=payload["name"],
            issuer=payload["iss"],
            audience=audience,
            issued_at=_timestamp(payload, "iat"),
            expires_at=_timestamp(payload, "exp"),
            token_id=payload["jti"],
            scopes=_scopes(payload.get("scp")),
            key_id=_optional_str(payload, "kid"),
            authorized_party=_optional_str(payload, "azp"),
            tenant=_optional_str(payload, "tenant"),
            tier=_optional_str(payload, "tier"),
            region=_optional_str(payload, "region"),
            owner=_optional_str(payload, "owner"),
            extra={k: v for k, v in payload.items() if k not in _KNOWN_CLAIMS},
            raw=dict(payload),
        )

    def principal_id(self) -> int:
        """Numeric principal (character) id encoded in ``subject``."""
        return extract_principal_id(self.subject)
