import jwt
import pytest

from feedcycle.directory.service_token import create_service_token


def test_token_carries_service_claims(test_settings):
    token = create_service_token(test_settings)

    claims = jwt.decode(
        token,
        test_settings.service_token_secret,
        algorithms=[test_settings.service_token_algorithm],
        audience=test_settings.service_token_audience,
        issuer=test_settings.service_token_issuer,
    )

    assert claims["sub"] == test_settings.service_token_subject
    assert claims["exp"] - claims["iat"] == test_settings.service_token_expiry_seconds + 2


def test_token_rejected_with_wrong_secret(test_settings):
    token = create_service_token(test_settings)

    with pytest.raises(jwt.InvalidSignatureError):
        jwt.decode(
            token,
            "not-the-secret",
            algorithms=[test_settings.service_token_algorithm],
            audience=test_settings.service_token_audience,
        )
