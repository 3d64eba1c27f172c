"""OAuth2 login flow and token verification."""

from evesso.core.oidc.client import SSOClient, build_login_request, exchange_code, verify_state
from evesso.core.oidc.jwks import KeySetCache, select_signing_key
from evesso.core.oidc.models import (
    AccessToken,
    AuthenticationRequest,
    ECSigningKey,
    IdentityClaims,
    KeySet,
    ProviderMetadata,
    RSASigningKey,
    SigningKey,
    extract_principal_id,
    parse_signing_key,
)
from evesso.core.oidc.validation import TokenVerifier

__all__ = [
    # Client
    "SSOClient",
    "build_login_request",
    "exchange_code",
    "verify_state",
    # Keys
    "KeySetCache",
    "select_signing_key",
    # Models
    "AccessToken",
    "AuthenticationRequest",
    "ECSigningKey",
    "IdentityClaims",
    "KeySet",
    "ProviderMetadata",
    "RSASigningKey",
    "SigningKey",
    "extract_principal_id",
    "parse_signing_key",
    # Validation
    "TokenVerifier",
]
