import pytest

from baycation.realtime.hub import set_hub
from baycation.realtime.sessions import Session
from baycation.realtime.tests.fakes import build_hub
from tests.factories import make_user


@pytest.fixture
def user(db):
    return make_user("traveler")


@pytest.fixture
def realtime_hub():
    """A process hub with in-memory stores; publishers fan out through it."""

    hub = build_hub(users=[])
    set_hub(hub)
    yield hub
    set_hub(None)


@pytest.fixture
def listen(realtime_hub):
    """Subscribe a bare session for ``user`` to ``room`` and return it."""

    def subscribe(user, room: str) -> Session:
        session = Session(session_id=f"listener-{user.pk}-{room}", user_id=user.pk)
        realtime_hub.registry.join(session, room)
        return session

    return subscribe
