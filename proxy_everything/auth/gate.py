import base64
import hmac
import logging
from enum import Enum
from typing import Optional

from fastapi.responses import PlainTextResponse, Response

from proxy_everything.proxy.finisher import finish
from proxy_everything.proxy.models import ProxyError, ProxyErrorKind
from proxy_everything.utils import credential_fingerprint
from proxy_everything.vars import AUTH_REALM, AUTH_USERNAME, PASSWORD_ENV_NAME

logger = logging.getLogger("uvicorn.error")


class AuthOutcome(str, Enum):
    AUTHORIZED = "authorized"
    MISSING_SECRET = "missing_secret"
    UNAUTHORIZED = "unauthorized"


def expected_authorization(secret: str, username: str = AUTH_USERNAME) -> str:
    token = base64.b64encode(f"{username}:{secret}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def check_auth(secret: Optional[str], authorization: Optional[str]) -> AuthOutcome:
    """
    Validate the Basic credential against the single configured secret.

    The username is always ``admin``. Comparison is constant-time over the
    full header value.
    """
    if not secret:
        return AuthOutcome.MISSING_SECRET

    expected = expected_authorization(secret).encode("utf-8")
    supplied = (authorization or "").encode("utf-8")
    if not hmac.compare_digest(supplied, expected):
        return AuthOutcome.UNAUTHORIZED
    return AuthOutcome.AUTHORIZED


def auth_error(outcome: AuthOutcome) -> Optional[ProxyError]:
    if outcome is AuthOutcome.MISSING_SECRET:
        return ProxyError(
            ProxyErrorKind.CONFIG_MISSING,
            f"{PASSWORD_ENV_NAME} not set in the proxy environment variables.",
        )
    if outcome is AuthOutcome.UNAUTHORIZED:
        return ProxyError(ProxyErrorKind.UNAUTHORIZED, "Auth required")
    return None


def auth_error_response(error: ProxyError) -> Response:
    if error.kind is ProxyErrorKind.CONFIG_MISSING:
        return finish(PlainTextResponse(error.message, status_code=500))
    return finish(
        PlainTextResponse(
            error.message,
            status_code=401,
            headers={"WWW-Authenticate": f'Basic realm="{AUTH_REALM}"'},
        )
    )


def authorize(secret: Optional[str], authorization: Optional[str]) -> Optional[Response]:
    """
    Run the gate and return the response to send when access is denied,
    None when the request may proceed.
    """
    error = auth_error(check_auth(secret, authorization))
    if error is None:
        return None
    if error.kind is ProxyErrorKind.CONFIG_MISSING:
        logger.error(f"[Auth] {error.message}")
    else:
        logger.warning(
            f"[Auth] Rejected credential ({credential_fingerprint(authorization)})"
        )
    return auth_error_response(error)
