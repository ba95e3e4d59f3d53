"""
Request user context and authentication.

A request is authenticated either by a bearer API key (mobile clients) or by
headers the trusted web proxy signs with ``INTERNAL_AUTH_SECRET``. The
resolved user id lives in a context variable for the rest of the request.
"""
import contextvars
import hashlib
import hmac
import os
import time
from typing import Mapping, Optional
from fastapi import HTTPException, status

from pocketledger.security.api_keys import parse_bearer_token, validate_api_key

INTERNAL_AUTH_USER_HEADER = "x-pocketledger-user-id"
INTERNAL_AUTH_TIMESTAMP_HEADER = "x-pocketledger-timestamp"
INTERNAL_AUTH_SIGNATURE_HEADER = "x-pocketledger-signature"
DEFAULT_INTERNAL_AUTH_MAX_AGE_SECONDS = 60

_request_user_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_user_id",
    default=None,
)


def set_request_user_id(user_id: str) -> contextvars.Token:
    return _request_user_id.set(user_id)


def clear_request_user_id(token: contextvars.Token) -> None:
    _request_user_id.reset(token)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _signing_secret() -> bytes:
    secret = os.getenv("INTERNAL_AUTH_SECRET", "").strip()
    if not secret:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal authentication secret is not configured.",
        )
    return secret.encode("utf-8")


def _max_signature_age() -> int:
    try:
        max_age = int(os.getenv("INTERNAL_AUTH_MAX_AGE_SECONDS", DEFAULT_INTERNAL_AUTH_MAX_AGE_SECONDS))
    except ValueError:
        return DEFAULT_INTERNAL_AUTH_MAX_AGE_SECONDS
    return max_age if max_age > 0 else DEFAULT_INTERNAL_AUTH_MAX_AGE_SECONDS


def build_signature_payload(method: str, path_with_query: str, user_id: str, timestamp: str) -> str:
    return "\n".join([method.upper(), path_with_query, user_id, timestamp])


def verify_signed_headers(method: str, path_with_query: str, headers: Mapping[str, str]) -> str:
    user_id = headers.get(INTERNAL_AUTH_USER_HEADER, "").strip()
    timestamp = headers.get(INTERNAL_AUTH_TIMESTAMP_HEADER, "").strip()
    signature = headers.get(INTERNAL_AUTH_SIGNATURE_HEADER, "").strip()
    if not (user_id and timestamp and signature):
        raise _unauthorized("Missing authentication headers.")

    try:
        signed_at = int(timestamp)
    except ValueError as exc:
        raise _unauthorized("Invalid internal authentication timestamp.") from exc
    if abs(int(time.time()) - signed_at) > _max_signature_age():
        raise _unauthorized("Expired internal authentication signature.")

    payload = build_signature_payload(method, path_with_query, user_id, timestamp)
    expected = hmac.new(_signing_secret(), payload.encode("utf-8"), hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, signature):
        raise _unauthorized("Invalid internal authentication signature.")
    return user_id


def authenticate_request(method: str, path_with_query: str, headers: Mapping[str, str]) -> str:
    """Resolve the calling user; a bearer API key takes priority over signed headers."""
    token = parse_bearer_token(headers.get("authorization"))
    if token:
        user_id = validate_api_key(token)
        if not user_id:
            raise _unauthorized("Invalid or expired API key.")
        return user_id
    return verify_signed_headers(method, path_with_query, headers)


def get_user_id() -> str:
    """User id of the current request; 401 outside an authenticated request."""
    user_id = _request_user_id.get()
    if not user_id:
        raise _unauthorized("Authentication required.")
    return user_id
