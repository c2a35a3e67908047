from datetime import datetime, timedelta, timezone

import jwt

from feedcycle.main.config import Settings, get_settings


def create_service_token(settings: Settings | None = None) -> str:
    """Mint a short-lived bearer token for one service-to-service call."""
    settings = settings or get_settings()
    now = datetime.now(timezone.utc)

    payload = {
        "sub": settings.service_token_subject,
        "aud": settings.service_token_audience,
        "iss": settings.service_token_issuer,
        # Backdate slightly so clock skew never makes the token not-yet-valid
        "iat": int((now - timedelta(seconds=2)).timestamp()),
        "exp": int(
            (now + timedelta(seconds=settings.service_token_expiry_seconds)).timestamp()
        ),
    }

    return jwt.encode(
        payload,
        settings.service_token_secret,
        algorithm=settings.service_token_algorithm,
    )
