from typing import Any, Dict

import jwt

from gymchat.config import get_settings


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode a hosted-auth access token; raises ``jwt.InvalidTokenError``."""
    settings = get_settings()
    options = {"require": ["sub", "exp"]}
    if settings.jwt_audience:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        options={**options, "verify_aud": False},
    )
