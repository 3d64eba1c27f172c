"""Verification of provider-issued JWTs.

A token is accepted only after all of the following pass, in this order:
key lookup, signature, issuer, audience and expiry. The first failing check
raises its specific TokenValidationError subclass.
"""

from __future__ import annotations

import logging
import math
from datetime import UTC, datetime
from typing import Any

import jwt

from evesso.core.config import DEFAULT_ALGORITHM, MAX_CLOCK_SKEW_SECONDS, SUPPORTED_ALGORITHMS
from evesso.core.errors import (
    ConfigurationError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidSignatureError,
    KeySetError,
    KeyUnavailableError,
    MalformedProviderResponseError,
    MalformedTokenError,
    TokenExpiredError,
    TokenValidationError,
)
from evesso.core.oidc.jwks import KeySetCache, select_signing_key
from evesso.core.oidc.models import IdentityClaims, SigningKey
from evesso.core.oidc.utils import unverified_header

logger = logging.getLogger(__name__)

# Claim checks are done here in a fixed order, so PyJWT only checks the signature.
_SIGNATURE_ONLY = {
    "verify_signature": True,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_aud": False,
    "verify_iss": False,
}


class TokenVerifier:
    """Verifies tokens against the provider's published keys."""

    def __init__(
        self,
        key_cache: KeySetCache,
        issuer: str,
        audience: str,
        algorithm: str = DEFAULT_ALGORITHM,
        clock_skew_seconds: int = 0,
    ) -> None:
        """Initialize the verifier.

        Args:
            key_cache: Source of the provider's signing keys.
            issuer: Exact expected ``iss`` value.
            audience: Exact expected ``aud`` value (or member of an ``aud`` list).
            algorithm: Signing algorithm tokens must use.
            clock_skew_seconds: Grace period after ``exp``, 0 to 300 seconds.

        Raises:
            ConfigurationError: If the algorithm or clock skew is out of range.
        """
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise ConfigurationError(f"Unsupported signing algorithm: {algorithm}")
        if not 0 <= clock_skew_seconds <= MAX_CLOCK_SKEW_SECONDS:
            raise ConfigurationError(
                f"clock_skew_seconds must be between 0 and {MAX_CLOCK_SKEW_SECONDS}, got {clock_skew_seconds}"
            )
        self.key_cache = key_cache
        self.issuer = issuer
        self.audience = audience
        self.algorithm = algorithm
        self.clock_skew_seconds = clock_skew_seconds

    async def verify(self, raw_token: str) -> IdentityClaims:
        """Verify a token and return its claims.

        Args:
            raw_token: Compact-serialized JWT.

        Returns:
            IdentityClaims of the verified token.

        Raises:
            KeyUnavailableError: If no verification key could be obtained.
            InvalidSignatureError: If the signature does not verify.
            InvalidIssuerError: If ``iss`` differs from the expected issuer.
            InvalidAudienceError: If ``aud`` does not match the expected audience.
            TokenExpiredError: If ``exp`` has passed.
            MalformedTokenError: If the token or its claims cannot be decoded.
        """
        try:
            key = await self._select_key(raw_token)
            payload = self._verify_signature(raw_token, key)
            self._check_issuer(payload)
            self._check_audience(payload)
            self._check_expiry(payload)
            claims = IdentityClaims.from_payload(payload)
        except TokenValidationError as e:
            logger.warning(f"Token rejected ({type(e).__name__}): {e}")
            raise

        logger.debug(f"Token {claims.token_id} verified for subject {claims.subject}")
        return claims

    async def _select_key(self, raw_token: str) -> SigningKey:
        try:
            key_set = await self.key_cache.get_keys()
        except KeySetError as e:
            raise KeyUnavailableError(e) from e

        header = unverified_header(raw_token)
        kid = header.get("kid")
        try:
            return select_signing_key(key_set.keys, self.algorithm, kid if isinstance(kid, str) else None)
        except KeySetError as e:
            raise KeyUnavailableError(e) from e

    def _verify_signature(self, raw_token: str, key: SigningKey) -> dict[str, Any]:
        try:
            public_key = key.public_key()
        except (jwt.exceptions.PyJWKError, jwt.exceptions.InvalidKeyError, ValueError) as e:
            reason = MalformedProviderResponseError(f"Key '{key.key_id}' has invalid key material: {e}")
            raise KeyUnavailableError(reason) from e

        try:
            return jwt.decode(raw_token, public_key, algorithms=[key.algorithm], options=_SIGNATURE_ONLY)
        except jwt.exceptions.InvalidSignatureError as e:
            raise InvalidSignatureError(f"Signature does not verify with key '{key.key_id}'") from e
        except jwt.exceptions.InvalidAlgorithmError as e:
            raise InvalidSignatureError(f"Token is not signed with {key.algorithm}: {e}") from e
        except jwt.exceptions.InvalidTokenError as e:
            raise MalformedTokenError(f"Could not decode token: {e}") from e

    def _check_issuer(self, payload: dict[str, Any]) -> None:
        iss = payload.get("iss")
        if iss != self.issuer:
            raise InvalidIssuerError(self.issuer, iss)

    def _check_audience(self, payload: dict[str, Any]) -> None:
        aud = payload.get("aud")
        if isinstance(aud, list):
            valid = self.audience in aud
        else:
            valid = aud == self.audience
        if not valid:
            raise InvalidAudienceError(self.audience, aud)

    def _check_expiry(self, payload: dict[str, Any]) -> None:
        exp = payload.get("exp")
        if exp is None:
            raise MalformedTokenError("Token has no 'exp' claim")
        if isinstance(exp, bool) or not isinstance(exp, int | float):
            raise MalformedTokenError("Claim 'exp' must be a numeric timestamp")
        if isinstance(exp, float) and not math.isfinite(exp):
            raise MalformedTokenError(f"Claim 'exp' is not a finite timestamp: {exp}")

        now = datetime.now(UTC).timestamp()
        if now >= exp + self.clock_skew_seconds:
            raise TokenExpiredError(int(exp))
