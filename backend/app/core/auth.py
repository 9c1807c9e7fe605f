"""Shared-secret authorization.

One deployment-wide secret per surface: ADMIN_KEY for the UI login,
CHATBOT_SECRET_KEY for the chat endpoint. No per-user identity, no expiry.
"""
import enum
import hashlib
import hmac
import logging
import secrets

from fastapi import Request

from config import settings
from core.errors import Misconfigured, Unauthorized

logger = logging.getLogger("grokchat.auth")

COOKIE_NAME = "admin"
_COOKIE_LABEL = b"grokchat-ui-session"


class AuthDecision(enum.Enum):
    GRANTED = "granted"
    MISSING_CREDENTIAL = "missing_credential"
    INVALID_CREDENTIAL = "invalid_credential"
    NOT_CONFIGURED = "not_configured"


def authorize(provided: str | None, configured: str | None) -> AuthDecision:
    """Compare a caller credential against the configured secret."""
    if not configured:
        return AuthDecision.NOT_CONFIGURED
    if not provided or not isinstance(provided, str):
        return AuthDecision.MISSING_CREDENTIAL
    if not secrets.compare_digest(provided.encode("utf-8"), configured.encode("utf-8")):
        return AuthDecision.INVALID_CREDENTIAL
    return AuthDecision.GRANTED


def require(decision: AuthDecision, what: str = "secret key") -> None:
    """Raise the boundary error matching a denied decision."""
    if decision is AuthDecision.GRANTED:
        return
    if decision is AuthDecision.NOT_CONFIGURED:
        logger.error("Authorization requested but %s is not configured", what)
        raise Misconfigured(f"Server misconfiguration: {what} is not set")
    if decision is AuthDecision.MISSING_CREDENTIAL:
        raise Unauthorized(f"Unauthorized: missing {what}")
    raise Unauthorized(f"Unauthorized: invalid {what}")


def extract_credential(authorization: str | None, body: dict) -> str | None:
    """Bearer header wins over the body's ``secretKey`` field."""
    if authorization:
        # accept either "Bearer <token>" or raw "<token>"; a bare "Bearer" is no token
        scheme, _, rest = authorization.strip().partition(" ")
        token = rest.strip() if scheme.lower() == "bearer" else authorization.strip()
        if token:
            return token
    value = body.get("secretKey")
    return value if isinstance(value, str) else None


# ---------------------------------------------------------------------------
# UI session cookie
# ---------------------------------------------------------------------------

def session_cookie_value(admin_key: str) -> str:
    return hmac.new(admin_key.encode("utf-8"), _COOKIE_LABEL, hashlib.sha256).hexdigest()


def has_valid_session(request: Request) -> bool:
    """True when the request carries the cookie issued by a successful login."""
    cookie = request.cookies.get(COOKIE_NAME)
    if not cookie or not settings.ADMIN_KEY:
        return False
    return secrets.compare_digest(cookie, session_cookie_value(settings.ADMIN_KEY))


def authorize_chat(request: Request, body: dict) -> None:
    """Apply the configured CHAT_AUTH_MODE to a chat request."""
    mode = settings.CHAT_AUTH_MODE
    if mode == "none":
        return
    if mode == "cookie":
        if not settings.ADMIN_KEY:
            require(AuthDecision.NOT_CONFIGURED, "ADMIN_KEY")
        if not has_valid_session(request):
            raise Unauthorized("Unauthorized: login required")
        return
    if mode != "secret":
        raise Misconfigured(f"Server misconfiguration: unknown CHAT_AUTH_MODE {mode!r}")

    credential = extract_credential(request.headers.get("authorization"), body)
    require(authorize(credential, settings.CHATBOT_SECRET_KEY), "secret key")
