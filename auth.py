"""Bearer token guard for protected routes."""

from typing import Optional

from fastapi import Depends, Header, Request

from errors import MissingOrMalformedAuth
from models import TokenClaims
from security import TokenService, get_token_service

BEARER_PREFIX = "Bearer"


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Return the token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization:
        raise MissingOrMalformedAuth()

    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != BEARER_PREFIX or not parts[1]:
        raise MissingOrMalformedAuth()

    return parts[1]


async def get_current_claims(
    request: Request,
    authorization: Optional[str] = Header(None),
    token_service: TokenService = Depends(get_token_service),
) -> TokenClaims:
    token = extract_bearer_token(authorization)
    claims = token_service.verify(token)
    request.state.claims = claims
    return claims
