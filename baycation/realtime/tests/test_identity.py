from datetime import timedelta

import pytest
from asgiref.sync import async_to_sync
from rest_framework_simplejwt.tokens import AccessToken
from rest_framework_simplejwt.tokens import RefreshToken

from baycation.realtime.exceptions import AuthError
from baycation.realtime.exceptions import TokenExpiredError
from baycation.realtime.identity import IdentityVerifier
from baycation.realtime.identity import decode_access_token
from baycation.realtime.stores import UserIdentity
from baycation.realtime.tests.fakes import FakeIdentityStore
from baycation.realtime.tests.fakes import decode_token
from tests.factories import make_user


@pytest.mark.django_db
class TestDecodeAccessToken:
    def test_valid_token_yields_user_id(self):
        user = make_user("alice")
        assert decode_access_token(str(AccessToken.for_user(user))) == user.pk

    def test_expired_token_is_told_apart(self):
        user = make_user("alice")
        token = AccessToken.for_user(user)
        token.set_exp(lifetime=-timedelta(minutes=5))
        with pytest.raises(TokenExpiredError):
            decode_access_token(str(token))

    def test_tampered_token_is_unauthorized(self):
        user = make_user("alice")
        raw = str(AccessToken.for_user(user))
        tampered = raw[:-4] + ("AAAA" if not raw.endswith("AAAA") else "BBBB")
        with pytest.raises(AuthError) as exc_info:
            decode_access_token(tampered)
        assert not isinstance(exc_info.value, TokenExpiredError)

    def test_refresh_token_is_not_an_access_token(self):
        user = make_user("alice")
        with pytest.raises(AuthError):
            decode_access_token(str(RefreshToken.for_user(user)))

    def test_garbage_is_unauthorized(self):
        with pytest.raises(AuthError):
            decode_access_token("not-a-jwt")


class TestIdentityVerifier:
    def setup_method(self):
        self.verifier = IdentityVerifier(
            FakeIdentityStore(UserIdentity(1, "Alice")), decode_token
        )

    def verify(self, credential):
        return async_to_sync(self.verifier.verify)(credential)

    def test_known_user(self):
        assert self.verify("token-1") == UserIdentity(1, "Alice")

    @pytest.mark.parametrize("credential", [None, "", "   ", 42, "bogus", "token-2"])
    def test_missing_malformed_and_unknown_all_refused_alike(self, credential):
        with pytest.raises(AuthError) as exc_info:
            self.verify(credential)
        assert exc_info.value.code == "unauthorized"
