from __future__ import annotations

from coincast.api.auth import create_token, identity_from_token, verify_token
from coincast.models.identity import Identity

SECRET = "test-secret"


class TestTokens:
    def test_roundtrip_identity(self) -> None:
        identity = Identity(uid="u1", display_name="Ann", photo_url="https://img/ann.png")
        token = create_token(SECRET, 1, identity)
        assert identity_from_token(token, SECRET) == identity

    def test_wrong_secret(self) -> None:
        token = create_token(SECRET, 1, Identity(uid="u1"))
        assert identity_from_token(token, "other") is None
        assert not verify_token(token, "other")

    def test_expired(self) -> None:
        token = create_token(SECRET, -1, Identity(uid="u1"))
        assert identity_from_token(token, SECRET) is None

    def test_garbage(self) -> None:
        assert identity_from_token("not-a-jwt", SECRET) is None

    def test_no_secret_configured(self) -> None:
        token = create_token(SECRET, 1, Identity(uid="u1"))
        assert identity_from_token(token, "") is None

    def test_verify(self) -> None:
        assert verify_token(create_token(SECRET, 1, Identity(uid="u1")), SECRET)
