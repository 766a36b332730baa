from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING
from typing import Any

from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken

from baycation.realtime.exceptions import AuthError
from baycation.realtime.exceptions import TokenExpiredError

if TYPE_CHECKING:
    from collections.abc import Callable

    from baycation.realtime.stores import IdentityStore
    from baycation.realtime.stores import UserIdentity

logger = logging.getLogger(__name__)


def _is_expired(token: str) -> bool:
    """True when the token decodes but its ``exp`` is in the past."""

    try:
        unverified = AccessToken(token, verify=False)
    except TokenError:
        return False
    exp = unverified.get("exp")
    return isinstance(exp, (int, float)) and exp <= time.time()


def decode_access_token(token: str) -> int:
    """Validate a simplejwt access token and return its user id."""

    try:
        validated = AccessToken(token)
    except TokenError as exc:
        if _is_expired(token):
            raise TokenExpiredError from exc
        raise AuthError from exc
    try:
        return int(validated[api_settings.USER_ID_CLAIM])
    except (KeyError, TypeError, ValueError):
        raise AuthError from None


class IdentityVerifier:
    """Turns a bearer credential into a known user.

    A missing, malformed or unresolvable credential all raise the same
    ``AuthError`` so a refused connection says nothing about which accounts
    exist. Only an expired token is told apart, so clients know to refresh.
    """

    def __init__(
        self,
        users: IdentityStore,
        decode: Callable[[str], int] = decode_access_token,
    ):
        self._users = users
        self._decode = decode

    async def verify(self, credential: Any) -> UserIdentity:
        if not isinstance(credential, str) or not credential.strip():
            raise AuthError
        user_id = self._decode(credential.strip())
        user = await self._users.find_user_by_id(user_id)
        if user is None:
            logger.info("Rejected credential for unknown user %s", user_id)
            raise AuthError
        return user
