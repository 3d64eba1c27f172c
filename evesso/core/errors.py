"""Exception types raised by the SSO flow and token verification.

Every failure is reported to the caller as one of these exceptions. Nothing
in the package recovers from them silently.

Hierarchy:
- SSOError
  - KeySetError: discovery/JWKS retrieval and key selection
  - TokenValidationError: a token was rejected
  - TokenExchangeFailedError, InvalidRedirectUrlError,
    CsrfStateMismatchError, ConfigurationError
"""

from __future__ import annotations


class SSOError(Exception):
    """Base class for all evesso errors."""


class ConfigurationError(SSOError, ValueError):
    """Invalid client or verifier configuration."""


# Key set retrieval


class KeySetError(SSOError):
    """The signing key set could not be obtained or used."""


class ProviderUnreachableError(KeySetError):
    """A discovery or JWKS request failed at the network or HTTP level."""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class MalformedProviderResponseError(KeySetError):
    """Provider metadata or the JWKS document has an unexpected shape."""

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class NoUsableKeyError(KeySetError):
    """No key in the key set matches the configured signing algorithm."""

    def __init__(self, algorithm: str, key_id: str | None = None) -> None:
        message = f"No signing key for algorithm {algorithm}"
        if key_id:
            message += f" (token kid '{key_id}')"
        super().__init__(message)
        self.algorithm = algorithm
        self.key_id = key_id


# Token validation


class TokenValidationError(SSOError):
    """A token failed verification and must not be trusted."""


class InvalidSignatureError(TokenValidationError):
    """Token signature does not verify against the selected key."""


class InvalidIssuerError(TokenValidationError):
    """Token ``iss`` claim does not match the expected issuer."""

    def __init__(self, expected: str, actual: object) -> None:
        super().__init__(f"Issuer mismatch: expected '{expected}', got '{actual}'")
        self.expected = expected
        self.actual = actual


class InvalidAudienceError(TokenValidationError):
    """Token ``aud`` claim does not contain the expected audience."""

    def __init__(self, expected: str, actual: object) -> None:
        super().__init__(f"Audience mismatch: expected '{expected}', got '{actual}'")
        self.expected = expected
        self.actual = actual


class TokenExpiredError(TokenValidationError):
    """Token ``exp`` is not in the future."""

    def __init__(self, expires_at: int) -> None:
        super().__init__(f"Token expired at {expires_at}")
        self.expires_at = expires_at


class MalformedTokenError(TokenValidationError):
    """Token cannot be decoded or lacks a required claim."""


class KeyUnavailableError(TokenValidationError):
    """No verification key could be obtained for the token.

    The underlying KeySetError is attached as ``__cause__`` and ``reason``.
    """

    def __init__(self, reason: KeySetError) -> None:
        super().__init__(f"Signing key unavailable: {reason}")
        self.reason = reason


# OAuth2 flow


class TokenExchangeFailedError(SSOError):
    """The token endpoint did not return a usable access token."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error: str | None = None,
        error_description: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error = error
        self.error_description = error_description


class InvalidRedirectUrlError(SSOError, ValueError):
    """The redirect URL is not an absolute http(s) URL."""

    def __init__(self, redirect_url: str, reason: str = "") -> None:
        message = f"Invalid redirect URL '{redirect_url}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.redirect_url = redirect_url


class CsrfStateMismatchError(SSOError):
    """Callback ``state`` does not match the value issued with the login URL."""

    def __init__(self) -> None:
        super().__init__("There was an issue logging you in, please try again.")
