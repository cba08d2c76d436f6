from datetime import timedelta

import pytest
from jose import ExpiredSignatureError, JWTError, jwt

from leadcrm.core.config import Settings
from leadcrm.core.security import TokenManager
from leadcrm.middleware.auth import issue_token, principal_from_claims
from leadcrm.models.user import Principal, Role


def test_provider_token_round_trips_to_principal():
    token = issue_token(Principal(role=Role.PROVIDER, provider_id=3, name="Carol"))

    principal = principal_from_claims(TokenManager.decode_token(token))

    assert principal.is_provider
    assert principal.provider_id == 3
    assert principal.name == "Carol"


def test_expired_token_rejected():
    token = TokenManager.create_access_token({"role": "admin", "sub": "1"}, expires_delta=timedelta(seconds=-5))

    with pytest.raises(ExpiredSignatureError):
        TokenManager.decode_token(token)


def test_token_from_other_secret_rejected():
    other = Settings(ENVIRONMENT="testing", SECRET_KEY="another-secret-that-is-long-enough-123")
    token = TokenManager.create_access_token({"role": "admin", "sub": "1"}, settings=other)

    with pytest.raises(JWTError):
        TokenManager.decode_token(token)
    assert TokenManager.decode_token(token, settings=other)["sub"] == "1"


def test_non_access_token_rejected():
    settings = Settings(ENVIRONMENT="testing")
    token = jwt.encode({"role": "admin", "type": "refresh"}, settings.secret_key, algorithm=settings.algorithm)

    with pytest.raises(ValueError):
        TokenManager.decode_token(token, settings=settings)


def test_provider_claims_need_an_id():
    with pytest.raises(ValueError):
        principal_from_claims({"role": "provider"})
