"""FastAPI dependencies for database sessions and caller authentication."""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

import jwt
from fastapi import Depends, Header
from jwt import PyJWTError

from .config import settings
from .database import get_db
from .exceptions import AuthenticationError


@dataclass(frozen=True)
class CallerContext:
    """Organization and user resolved from the caller's bearer token."""

    org_id: UUID
    user_id: str


async def get_caller(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> CallerContext:
    """
    Authentication dependency that validates Bearer tokens.

    The token must be an HS256 JWT signed with the configured secret and
    carry ``sub`` (user ID) and ``org_id`` claims. Expiry is enforced when
    an ``exp`` claim is present.

    Raises:
        AuthenticationError: If the header is missing or the token is invalid
    """
    if not authorization:
        raise AuthenticationError("Authorization header missing")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Invalid authorization header format")

    try:
        payload = jwt.decode(
            token.strip(),
            settings.bearer_token_secret,
            algorithms=["HS256"]
        )
    except PyJWTError as e:
        raise AuthenticationError(f"Token validation failed: {e}") from e

    user_id = payload.get("sub")
    org_id = payload.get("org_id")
    if not user_id or not org_id:
        raise AuthenticationError("Token must carry sub and org_id claims")

    try:
        org_uuid = UUID(str(org_id))
    except ValueError as e:
        raise AuthenticationError("Token org_id claim is not a valid UUID") from e

    return CallerContext(org_id=org_uuid, user_id=str(user_id))


RequiredCaller = Depends(get_caller)
DatabaseSession = Depends(get_db)
