import pytest

from baycation.realtime.commands import AnswerQuestion
from baycation.realtime.commands import JoinRoom
from baycation.realtime.commands import LeaveRoom
from baycation.realtime.commands import MarkRead
from baycation.realtime.commands import SendMessage
from baycation.realtime.commands import Typing
from baycation.realtime.commands import UpdateActivity
from baycation.realtime.commands import UpdateItinerary
from baycation.realtime.commands import parse_command
from baycation.realtime.exceptions import ValidationError
from baycation.realtime.rooms import chat_room
from baycation.realtime.rooms import trip_room


@pytest.mark.parametrize(
    ("data", "room"),
    [
        ({"roomId": "trip_4"}, trip_room(4)),
        ({"roomId": "trip-4"}, trip_room(4)),
        ({"tripId": "4"}, trip_room(4)),
        ({"chatId": 9}, chat_room(9)),
    ],
)
def test_join_room_accepts_every_room_spelling(data, room):
    assert parse_command("joinRoom", data) == JoinRoom(room)


def test_trip_aliases_take_a_bare_id():
    assert parse_command("joinTrip", 4) == JoinRoom(trip_room(4))
    assert parse_command("leaveTrip", "4") == LeaveRoom(trip_room(4))
    assert parse_command("leaveTrip", {"tripId": 4}) == LeaveRoom(trip_room(4))


@pytest.mark.parametrize(
    "data",
    [None, {}, {"roomId": "lobby"}, {"tripId": "abc"}, {"roomId": 12}],
)
def test_join_room_needs_a_valid_room(data):
    with pytest.raises(ValidationError):
        parse_command("joinRoom", data)


def test_send_message_trims_and_defaults_to_text():
    command = parse_command("sendMessage", {"chatId": 2, "content": "  hi  "})
    assert command == SendMessage(chat_room(2), "hi", "text")


@pytest.mark.parametrize("content", ["", "   ", None, 5])
def test_send_message_rejects_empty_content(content):
    with pytest.raises(ValidationError, match="required"):
        parse_command("sendMessage", {"chatId": 2, "content": content})


def test_send_message_enforces_the_length_bound():
    ok = parse_command("sendMessage", {"chatId": 2, "content": "x" * 2000})
    assert len(ok.content) == 2000
    with pytest.raises(ValidationError, match="2000"):
        parse_command("sendMessage", {"chatId": 2, "content": "x" * 2001})


def test_send_message_rejects_server_only_types():
    with pytest.raises(ValidationError):
        parse_command(
            "sendMessage", {"chatId": 2, "content": "hi", "messageType": "system"}
        )


def test_typing_and_activity():
    assert parse_command("typing", {"tripId": 1, "isTyping": 1}) == Typing(
        trip_room(1), is_typing=True
    )
    assert parse_command("updateActivity", {}) == UpdateActivity(None)
    assert parse_command("updateActivity", {"tripId": 1}) == UpdateActivity(trip_room(1))


def test_update_itinerary_payload():
    command = parse_command(
        "updateItinerary",
        {
            "tripId": 1,
            "itinerary": [{"day": 1, "activities": []}],
            "changeInfo": {"action": "added", "description": "a museum"},
            "version": "3",
        },
    )
    assert command == UpdateItinerary(
        trip_room(1),
        [{"day": 1, "activities": []}],
        change_info={"action": "added", "description": "a museum"},
        expected_version=3,
    )
    with pytest.raises(ValidationError):
        parse_command("updateItinerary", {"tripId": 1, "itinerary": "day one"})


def test_mark_read_and_answer_question():
    assert parse_command("markRead", 5) == MarkRead(chat_room(5))
    assert parse_command("markRead", {"chatId": 5}) == MarkRead(chat_room(5))
    assert parse_command(
        "answerQuestion", {"messageId": "8", "answer": " yes "}
    ) == AnswerQuestion(8, "yes")
    with pytest.raises(ValidationError, match="messageId"):
        parse_command("answerQuestion", {"answer": "yes"})


def test_unknown_event():
    with pytest.raises(ValidationError, match="Unknown event"):
        parse_command("dropTables", {})
