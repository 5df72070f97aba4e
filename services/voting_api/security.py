"""Voter session tokens."""
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from ballot_engine import NotAuthenticated, Voter


def create_access_token(voter: Voter, secret_key: str, algorithm: str, expires_minutes: int) -> str:
    """Issue a bearer token identifying the voter."""
    to_encode = {
        "sub": voter.voter_id,
        "admin": voter.is_admin,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(to_encode, secret_key, algorithm=algorithm)


def decode_access_token(token: str, secret_key: str, algorithm: str) -> str:
    """
    Return the voter id carried by a token.

    Raises:
        NotAuthenticated: If the token is invalid, expired or has no subject
    """
    try:
        payload = jwt.decode(token, secret_key, algorithms=[algorithm])
    except JWTError:
        raise NotAuthenticated("Your session has expired, please log in again")

    voter_id: Optional[str] = payload.get("sub")
    if not voter_id:
        raise NotAuthenticated()
    return voter_id


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer ...`` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
