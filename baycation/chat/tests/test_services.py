import pytest

from baycation.chat import services
from baycation.chat.models import Chat
from baycation.chat.models import ChatParticipant
from baycation.chat.models import Message
from baycation.realtime.exceptions import AlreadyAnswered
from baycation.realtime.exceptions import AuthorizationError
from baycation.realtime.exceptions import NotFoundError
from baycation.realtime.exceptions import ValidationError
from tests.factories import add_participant
from tests.factories import make_trip
from tests.factories import make_user

pytestmark = pytest.mark.django_db


@pytest.fixture
def olga():
    return make_user("olga")


@pytest.fixture
def marco():
    return make_user("marco")


@pytest.fixture
def direct(olga, marco):
    chat, _ = services.get_or_create_direct_chat(olga, marco.pk)
    return chat


def unread(chat, user):
    return ChatParticipant.objects.get(chat=chat, user=user).unread_count


class TestDirectChats:
    def test_pair_resolves_to_one_chat_in_either_order(self, olga, marco):
        first, created = services.get_or_create_direct_chat(olga, marco.pk)
        again, created_again = services.get_or_create_direct_chat(marco, olga.pk)
        assert created is True
        assert created_again is False
        assert first.pk == again.pk
        assert Chat.objects.filter(chat_type=Chat.Type.DIRECT).count() == 1
        assert services.participant_ids(first) == {olga.pk, marco.pk}

    def test_chat_with_yourself_is_rejected(self, olga):
        with pytest.raises(ValidationError, match="yourself"):
            services.get_or_create_direct_chat(olga, olga.pk)

    def test_unknown_participant(self, olga):
        with pytest.raises(NotFoundError):
            services.get_or_create_direct_chat(olga, 98765)

    def test_deactivated_pair_can_start_over(self, olga, marco, direct):
        services.deactivate_chat(direct)
        fresh, created = services.get_or_create_direct_chat(olga, marco.pk)
        assert created is True
        assert fresh.pk != direct.pk


class TestUnreadCounters:
    def test_counts_follow_messages_then_reset_on_read(self, olga, marco, direct):
        for n in range(3):
            services.append_message(direct, olga, f"message {n}")

        assert unread(direct, marco) == 3
        assert unread(direct, olga) == 0

        assert services.mark_chat_read(direct, marco) == 3
        assert unread(direct, marco) == 0
        assert services.mark_chat_read(direct, marco) == 0

    def test_snapshot_tracks_the_latest_message(self, olga, marco, direct):
        services.append_message(direct, olga, "first")
        services.append_message(direct, marco, "second")
        direct.refresh_from_db()
        assert direct.last_message_content == "second"
        assert direct.last_message_sender_id == marco.pk
        assert unread(direct, olga) == 1
        assert unread(direct, marco) == 1


class TestMessages:
    def test_content_is_trimmed_and_bounded(self, olga, direct):
        message = services.append_message(direct, olga, "  hola  ")
        assert message.content == "hola"
        with pytest.raises(ValidationError, match="required"):
            services.append_message(direct, olga, "   ")
        with pytest.raises(ValidationError, match="2000"):
            services.append_message(direct, olga, "x" * 2001)
        assert services.append_message(direct, olga, "x" * 2000).pk

    def test_soft_deleted_messages_drop_out_of_listings(self, olga, direct):
        keep = services.append_message(direct, olga, "keep")
        gone = services.append_message(direct, olga, "gone")
        services.soft_delete_message(gone.pk, olga)

        visible, total = services.list_messages(direct)
        assert [m.pk for m in visible] == [keep.pk]
        assert total == 1
        assert Message.all_objects.get(pk=gone.pk).is_deleted is True
        with pytest.raises(NotFoundError):
            services.get_message(gone.pk)

    def test_only_the_sender_may_edit_or_delete(self, olga, marco, direct):
        message = services.append_message(direct, olga, "mine")
        with pytest.raises(AuthorizationError):
            services.edit_message(message.pk, marco, "ours")
        with pytest.raises(AuthorizationError):
            services.soft_delete_message(message.pk, marco)
        edited = services.edit_message(message.pk, olga, "still mine")
        assert edited.is_edited is True

    def test_listing_pages_newest_last(self, olga, direct):
        for n in range(5):
            services.append_message(direct, olga, str(n))
        page, total = services.list_messages(direct, page=1, limit=2)
        assert total == 5
        assert [m.content for m in page] == ["3", "4"]
        page, _ = services.list_messages(direct, page=3, limit=2)
        assert [m.content for m in page] == ["0"]

    def test_reaction_toggles(self, olga, marco, direct):
        message = services.append_message(direct, olga, "sunset at 8?")
        assert services.toggle_reaction(message.pk, marco, "👍") is True
        assert services.toggle_reaction(message.pk, marco, "👍") is False


class TestQuestions:
    def test_question_is_answered_once(self, olga, marco, direct):
        question = services.append_message(
            direct, olga, "Who books the taxi?", Message.Type.QUESTION
        )
        answer = services.answer_question(question.pk, marco, "I will")
        assert answer.reply_to_id == question.pk
        assert answer.message_type == Message.Type.ANSWER

        question.refresh_from_db()
        assert question.is_answered is True
        assert question.answered_by_id == marco.pk

        with pytest.raises(AlreadyAnswered):
            services.answer_question(question.pk, olga, "No, me")
        assert Message.objects.filter(message_type=Message.Type.ANSWER).count() == 1

    def test_plain_messages_cannot_be_answered(self, olga, marco, direct):
        message = services.append_message(direct, olga, "just saying")
        with pytest.raises(ValidationError):
            services.answer_question(message.pk, marco, "ok")

    def test_outsiders_cannot_answer(self, olga, direct):
        question = services.append_message(
            direct, olga, "Anyone?", Message.Type.QUESTION
        )
        with pytest.raises(AuthorizationError):
            services.answer_question(question.pk, make_user("nadia"), "me")


class TestTripChats:
    def test_trip_chat_follows_confirmed_membership(self, olga, marco):
        trip = make_trip(olga)
        add_participant(trip, marco)
        chat = services.get_or_create_trip_chat(trip)

        assert chat.chat_type == Chat.Type.TRIP
        assert services.participant_ids(chat) == {olga.pk, marco.pk}
        assert services.get_or_create_trip_chat(trip).pk == chat.pk

        services.drop_trip_chat_participant(trip, marco.pk)
        assert services.participant_ids(chat) == {olga.pk}

    def test_late_joiner_gets_a_seat_and_unread_counts(self, olga, marco):
        trip = make_trip(olga)
        add_participant(trip, marco)
        chat = services.get_or_create_trip_chat(trip)
        nadia = make_user("nadia")
        add_participant(trip, nadia)

        services.post_message(chat, marco, "Bring sunscreen")

        assert unread(chat, nadia) == 1
        assert unread(chat, olga) == 1
        assert unread(chat, marco) == 0
        assert chat in services.chats_for_user(nadia.pk)

    def test_seat_is_added_once_the_chat_exists(self, olga, marco):
        trip = make_trip(olga)
        assert services.seat_trip_chat_participant(trip, marco.pk) is False

        chat = services.get_or_create_trip_chat(trip)
        add_participant(trip, marco)
        assert services.seat_trip_chat_participant(trip, marco.pk) is True
        assert services.seat_trip_chat_participant(trip, marco.pk) is False
        assert services.participant_ids(chat) == {olga.pk, marco.pk}

    def test_posting_respects_discussion_flag(self, olga, marco):
        trip = make_trip(olga, allow_discussions=False)
        add_participant(trip, marco)
        chat = services.get_or_create_trip_chat(trip)
        with pytest.raises(AuthorizationError, match="Discussions"):
            services.post_message(chat, marco, "hello")

    def test_posting_requires_membership(self, olga, direct):
        with pytest.raises(AuthorizationError):
            services.post_message(direct, make_user("nadia"), "hi")
        with pytest.raises(ValidationError):
            services.post_message(direct, olga, "hi", "system")
