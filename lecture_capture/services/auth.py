"""Identity helpers: the reserved guest user and sign-in failure guidance."""

import logging
from urllib.parse import unquote

from lecture_capture.errors import AuthError
from lecture_capture.models import GUEST_USER_ID, User

logger = logging.getLogger(__name__)

OPERATION_NOT_ALLOWED_GUIDANCE = (
    "Google sign-in is not enabled for this project. Enable it under "
    "Authentication > Sign-in method, then try again."
)
UNAUTHORIZED_DOMAIN_GUIDANCE = (
    "Domain Not Authorized. Add this site's domain to the Authorized Domains "
    "list (Authentication > Settings) and try again."
)
CODE_EXCHANGE_GUIDANCE = (
    "The sign-in provider could not exchange the authorization code. Check that "
    "the redirect URI has no trailing spaces, regenerate the client secret and "
    "paste the new one into the auth provider, and make sure the authorized "
    "JavaScript origins list this site's origin exactly."
)


def guest_user() -> User:
    return User(id=GUEST_USER_ID, email="guest@demo.local", name="Guest User")


def authenticated_user(
    user_id: str,
    email: str,
    name: str | None = None,
    picture: str | None = None,
) -> User:
    """Build the session identity for a user the provider has signed in."""
    if not user_id or not user_id.strip():
        raise AuthError("Authentication failed: the provider returned no user id.")
    if user_id == GUEST_USER_ID:
        raise AuthError("Authentication failed: the guest id is reserved.")
    return User(id=user_id, email=email or "", name=name or "Student", picture=picture)


def auth_error_from_callback(
    error_code: str | None = None,
    error_description: str | None = None,
) -> AuthError:
    """Map a provider error (or failed OAuth redirect) to an ``AuthError`` with guidance."""
    code = unquote(error_code or "")
    description = unquote(error_description or "")
    message = description or code or "Unknown error"
    logger.warning("Sign-in failed: code=%r description=%r", code, description)

    if code.endswith("operation-not-allowed"):
        return AuthError(message, guidance=OPERATION_NOT_ALLOWED_GUIDANCE)
    if code.endswith("unauthorized-domain"):
        return AuthError(message, guidance=UNAUTHORIZED_DOMAIN_GUIDANCE)
    if "exchange" in description.lower():
        return AuthError(message, guidance=CODE_EXCHANGE_GUIDANCE)
    return AuthError(
        f"Authentication failed: {message}. Ensure your domain is whitelisted."
    )
