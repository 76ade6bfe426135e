from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import HTTPException, status
from jose import jwt
from jose.exceptions import JWTError

from app.config import settings


logger = logging.getLogger("auth.supabase")

SUPABASE_JWT_ALGORITHMS = ["HS256"]


def verify_supabase_token(token: str) -> Dict[str, Any]:
    secret = settings.SUPABASE_JWT_SECRET
    if not secret:
        logger.error("SUPABASE_JWT_SECRET is not configured; rejecting bearer token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=SUPABASE_JWT_ALGORITHMS,
            audience=settings.SUPABASE_JWT_AUDIENCE,
        )
    except (JWTError, ValueError) as exc:
        logger.warning("Token verification failed", exc_info=exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized") from exc

    logger.debug(
        "Verified Supabase token",
        extra={"aud": claims.get("aud"), "sub": claims.get("sub"), "role": claims.get("role")},
    )
    return claims
