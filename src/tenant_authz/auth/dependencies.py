from __future__ import annotations

from typing import Optional

from fastapi import Header, Request

from tenant_authz.auth.jwt import TokenValidator
from tenant_authz.auth.models import Principal
from tenant_authz.configs.logging_config import get_logger
from tenant_authz.errors import AuthError

log = get_logger(__name__)


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthError("missing authorization header")
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise AuthError("authorization header must be 'Bearer <token>'")
    return token


async def get_principal(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Principal:
    """
    Authenticate the request. Every failure is an AuthError (401); there is
    no anonymous fallback.
    """
    try:
        token = _bearer_token(authorization)
    except AuthError:
        log.info("auth.missing_bearer_token path=%s", request.url.path)
        raise

    validator: TokenValidator = request.app.state.token_validator
    principal = validator.validate(token)
    request.state.principal = principal
    return principal


def client_origin(request: Request) -> tuple[Optional[str], Optional[str]]:
    """(ip_address, user_agent) recorded on audit entries."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip() or None
    else:
        ip = request.client.host if request.client else None
    return ip, request.headers.get("user-agent")
