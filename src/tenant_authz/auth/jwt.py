from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Sequence

from jose import JWTError, jws, jwt
from jose.exceptions import JWSError

from tenant_authz.auth.models import Principal, Role
from tenant_authz.configs.logging_config import get_logger
from tenant_authz.configs.settings import Settings
from tenant_authz.errors import AuthError, InvalidSignatureError, TokenExpiredError
from tenant_authz.utils.time_utils import utc_now

log = get_logger(__name__)

REQUIRED_STRING_CLAIMS = ("tenantId", "userId", "role")


def validate(
    raw_token: str | None,
    secret: str,
    now: datetime,
    *,
    algorithms: Sequence[str] = ("HS256",),
) -> Principal:
    """
    Verify a bearer token and return the principal it describes.

    Checks run in this order:
    - token present and structurally a JWT with a JSON claims object
    - `exp` not in the past (independent of the signature, so an expired
      token is always reported as expired)
    - signature verifies under `secret`

    Only tenantId, userId, role, locations, iat and exp are read from the
    claims; anything else in the token is ignored.
    """
    if not raw_token:
        log.info("jwt.validate missing_token")
        raise AuthError("missing bearer token")

    try:
        jwt.get_unverified_header(raw_token)
        claims = jwt.get_unverified_claims(raw_token)
    except JWTError as e:
        log.info("jwt.validate malformed error=%s", str(e))
        raise AuthError("malformed token") from e
    if not isinstance(claims, dict):
        raise AuthError("malformed token")

    issued_at = _timestamp_claim(claims, "iat")
    expires_at = _timestamp_claim(claims, "exp")

    if now > expires_at:
        log.info("jwt.validate expired exp=%s now=%s", expires_at.isoformat(), now.isoformat())
        raise TokenExpiredError()

    try:
        jws.verify(raw_token, secret, algorithms=list(algorithms))
    except JWSError as e:
        log.info("jwt.validate bad_signature error=%s", str(e))
        raise InvalidSignatureError() from e

    principal = _principal_from_claims(claims, issued_at, expires_at)
    log.info(
        "jwt.validate ok tenant_id=%s user_id=%s role=%s",
        principal.tenant_id,
        principal.user_id,
        principal.role.value,
    )
    return principal


def _timestamp_claim(claims: dict[str, Any], name: str) -> datetime:
    value = claims.get(name)
    # bool is an int subclass; a boolean exp is not a timestamp
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        log.info("jwt.validate invalid_claim claim=%s", name)
        raise AuthError(f"token missing or invalid '{name}' claim")
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise AuthError(f"token has out-of-range '{name}' claim") from e


def _principal_from_claims(
    claims: dict[str, Any], issued_at: datetime, expires_at: datetime
) -> Principal:
    missing = [c for c in REQUIRED_STRING_CLAIMS if not isinstance(claims.get(c), str) or not claims.get(c)]
    if missing:
        log.info("jwt.validate missing_claims claims=%s", missing)
        raise AuthError("token missing required claims")

    try:
        role = Role.parse(claims["role"])
    except ValueError as e:
        log.info("jwt.validate unknown_role role=%s", claims["role"])
        raise AuthError("token carries an unknown role") from e

    locations = claims.get("locations", [])
    if not isinstance(locations, list) or not all(isinstance(loc, str) for loc in locations):
        log.info("jwt.validate invalid_locations type=%s", type(locations).__name__)
        raise AuthError("invalid locations claim")

    return Principal(
        user_id=claims["userId"],
        tenant_id=claims["tenantId"],
        role=role,
        locations=frozenset(locations),
        issued_at=issued_at,
        expires_at=expires_at,
    )


class TokenValidator:
    """Settings-bound wrapper around `validate` used by the request layer."""

    def __init__(self, settings: Settings, clock=utc_now):
        self._secret = settings.jwt_secret
        self._algorithms = (settings.jwt_alg,)
        self._clock = clock

    def validate(self, raw_token: str | None, now: datetime | None = None) -> Principal:
        return validate(
            raw_token,
            self._secret,
            now if now is not None else self._clock(),
            algorithms=self._algorithms,
        )
