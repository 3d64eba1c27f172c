"""evesso - EVE Online SSO login and token verification."""

from evesso.core.config import SSOConfig, load_config
from evesso.core.errors import (
    ConfigurationError,
    CsrfStateMismatchError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidRedirectUrlError,
    InvalidSignatureError,
    KeySetError,
    KeyUnavailableError,
    MalformedProviderResponseError,
    MalformedTokenError,
    NoUsableKeyError,
    ProviderUnreachableError,
    SSOError,
    TokenExchangeFailedError,
    TokenExpiredError,
    TokenValidationError,
)
from evesso.core.oidc import (
    AccessToken,
    AuthenticationRequest,
    IdentityClaims,
    KeySet,
    KeySetCache,
    SSOClient,
    TokenVerifier,
    build_login_request,
    exchange_code,
    extract_principal_id,
    select_signing_key,
    verify_state,
)

__version__ = "0.1.0"

__all__ = [
    "AccessToken",
    "AuthenticationRequest",
    "ConfigurationError",
    "CsrfStateMismatchError",
    "IdentityClaims",
    "InvalidAudienceError",
    "InvalidIssuerError",
    "InvalidRedirectUrlError",
    "InvalidSignatureError",
    "KeySet",
    "KeySetCache",
    "KeySetError",
    "KeyUnavailableError",
    "MalformedProviderResponseError",
    "MalformedTokenError",
    "NoUsableKeyError",
    "ProviderUnreachableError",
    "SSOClient",
    "SSOConfig",
    "SSOError",
    "TokenExchangeFailedError",
    "TokenExpiredError",
    "TokenValidationError",
    "TokenVerifier",
    "__version__",
    "build_login_request",
    "exchange_code",
    "extract_principal_id",
    "load_config",
    "select_signing_key",
    "verify_state",
]
