from datetime import datetime, timedelta, timezone
from typing import Sequence

import jwt
from jwt import InvalidTokenError

ACCESS_TOKEN_TYPE = "access"


def create_access_token(
    *,
    user_id: int,
    secret: str,
    algorithm: str = "HS256",
    expires_delta: timedelta | None = None,
) -> str:
    """Issue a short-lived token. Production tokens come from the auth service; this mirrors its format."""
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=30))
    payload = {"sub": str(user_id), "typ": ACCESS_TOKEN_TYPE, "iat": now, "exp": exp}
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(
    token: str,
    *,
    secret: str,
    algorithms: Sequence[str],
) -> int:
    """Return the user id carried by a valid access token. Raises ValueError otherwise."""
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=list(algorithms),
            options={"require": ["exp", "sub"]},
        )
    except InvalidTokenError as exc:  # includes ExpiredSignatureError
        raise ValueError("invalid token") from exc

    if payload.get("typ", ACCESS_TOKEN_TYPE) != ACCESS_TOKEN_TYPE:
        raise ValueError("not an access token")
    try:
        return int(payload["sub"])
    except (TypeError, ValueError) as exc:
        raise ValueError("token sub is not an integer") from exc
