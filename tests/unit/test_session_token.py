"""Unit tests for session tokens.

Tests for app/auth/session_token.py.

Run with:
    pytest tests/unit/test_session_token.py -v
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from app.auth.session_token import TOKEN_TYPE, create_session_token, decode_session_token


@pytest.mark.fast
class TestSessionToken:
    """Tests for create/decode of session tokens."""

    def test_round_trip(self, settings):
        token = create_session_token("octocat", settings)
        assert decode_session_token(token, settings) == "octocat"

    def test_claims(self, settings):
        token = create_session_token("octocat", settings)
        payload = jwt.decode(token, settings.SESSION_SECRET_KEY, algorithms=["HS256"])
        assert payload["sub"] == "octocat"
        assert payload["type"] == TOKEN_TYPE
        assert payload["exp"] > payload["iat"]

    def test_wrong_secret(self, settings):
        token = jwt.encode(
            {"sub": "octocat", "type": TOKEN_TYPE}, "another-secret", algorithm="HS256"
        )
        with pytest.raises(ValueError, match="Invalid session token"):
            decode_session_token(token, settings)

    def test_expired(self, settings):
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = jwt.encode(
            {"sub": "octocat", "type": TOKEN_TYPE, "iat": past - timedelta(hours=1), "exp": past},
            settings.SESSION_SECRET_KEY,
            algorithm="HS256",
        )
        with pytest.raises(ValueError, match="expired"):
            decode_session_token(token, settings)

    def test_wrong_type(self, settings):
        token = jwt.encode(
            {"sub": "octocat", "type": "refresh"}, settings.SESSION_SECRET_KEY, algorithm="HS256"
        )
        with pytest.raises(ValueError, match="not a session token"):
            decode_session_token(token, settings)

    def test_missing_subject(self, settings):
        token = jwt.encode({"type": TOKEN_TYPE}, settings.SESSION_SECRET_KEY, algorithm="HS256")
        with pytest.raises(ValueError, match="missing subject"):
            decode_session_token(token, settings)

    def test_garbage(self, settings):
        with pytest.raises(ValueError):
            decode_session_token("not-a-jwt", settings)
