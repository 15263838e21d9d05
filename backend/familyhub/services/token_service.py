# Overview: Service-layer operations for bearer tokens; signs and verifies access/refresh JWTs.

"""
Access / Refresh Token Signing

Tokens are HS256 JWTs (PyJWT) carrying:
    sid   session id (auth_sessions.id)
    sub   user id (string)
    type  "access" | "refresh"
    iat / exp
    jti   random id, so two tokens minted in the same second differ

The signature is the only integrity check done here. Whether the session
behind a token still exists is decided by session_service.

Expiry is checked against an explicit `now` rather than the wall clock so
callers (and tests) control time the same way the tariff sweep does.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime

import jwt
from flask import current_app

from ..time_utils import from_epoch, to_epoch, utcnow


TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"
TOKEN_TYPES = {TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH}

REQUIRED_CLAIMS = ["sid", "sub", "type", "iat", "exp"]


class AuthError(Exception):
    """Credential rejected. Surfaced to clients as 401, never retried."""
    code = "auth_error"


class InvalidSignature(AuthError):
    """Token is malformed or its signature does not verify."""
    code = "invalid_signature"


class TokenExpired(AuthError):
    """Signature verifies but the token's exp has passed."""
    code = "token_expired"


class WrongTokenType(AuthError):
    """An access token was presented where a refresh token is required, or vice versa."""
    code = "wrong_token_type"


@dataclass(frozen=True)
class TokenClaims:
    session_id: str
    user_id: int
    token_type: str
    issued_at: datetime
    expires_at: datetime
    token_id: str | None = None


def _signing_key() -> str:
    return current_app.config.get("JWT_SECRET") or current_app.config["SECRET_KEY"]


def issue_token(
    *,
    session_id: str,
    user_id: int,
    token_type: str,
    expires_at: datetime,
    now: datetime | None = None,
) -> str:
    """Sign a token of the given type that expires at `expires_at`."""
    if token_type not in TOKEN_TYPES:
        raise ValueError(f"Unknown token type '{token_type}'")
    now = now or utcnow()

    payload = {
        "sid": session_id,
        "sub": str(user_id),
        "type": token_type,
        "iss": current_app.config["JWT_ISSUER"],
        "iat": to_epoch(now),
        "exp": to_epoch(expires_at),
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, _signing_key(), algorithm=current_app.config["JWT_ALGORITHM"])


def decode_token(
    token: str,
    *,
    expected_type: str | None,
    now: datetime | None = None,
    verify_expiry: bool = True,
) -> TokenClaims:
    """
    Verify signature, issuer and type, then (optionally) expiry.

    Raises:
        InvalidSignature: malformed token, bad signature, missing claims
        WrongTokenType: type claim differs from expected_type
        TokenExpired: exp <= now (only when verify_expiry)
    """
    if not token:
        raise InvalidSignature("Token missing")

    try:
        payload = jwt.decode(
            token,
            _signing_key(),
            algorithms=[current_app.config["JWT_ALGORITHM"]],
            issuer=current_app.config["JWT_ISSUER"],
            options={"verify_exp": False, "verify_iat": False, "require": REQUIRED_CLAIMS},
        )
    except jwt.InvalidTokenError as exc:
        raise InvalidSignature(f"Invalid token: {exc}") from exc

    try:
        claims = TokenClaims(
            session_id=str(payload["sid"]),
            user_id=int(payload["sub"]),
            token_type=payload["type"],
            issued_at=from_epoch(payload["iat"]),
            expires_at=from_epoch(payload["exp"]),
            token_id=payload.get("jti"),
        )
    except (TypeError, ValueError) as exc:
        raise InvalidSignature(f"Invalid token claims: {exc}") from exc

    if expected_type is not None and claims.token_type != expected_type:
        raise WrongTokenType(f"Expected {expected_type} token, got {claims.token_type}")

    if verify_expiry and claims.expires_at <= (now or utcnow()):
        raise TokenExpired(f"{claims.token_type.capitalize()} token has expired")

    return claims
