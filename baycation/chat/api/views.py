from __future__ import annotations

from django.db import transaction
from drf_spectacular.utils import OpenApiParameter
from drf_spectacular.utils import extend_schema
from drf_spectacular.utils import extend_schema_view
from rest_framework import mixins
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from baycation.chat import services
from baycation.chat.models import Chat
from baycation.chat.models import Message
from baycation.realtime.events import chat as chat_events

from .serializers import AnswerSerializer
from .serializers import ChatSerializer
from .serializers import DirectChatCreateSerializer
from .serializers import MessageCreateSerializer
from .serializers import MessageEditSerializer
from .serializers import MessageSerializer
from .serializers import ReactionSerializer


def _serialize_message(message: Message) -> dict:
    message = Message.all_objects.prefetch_related("read_receipts", "reactions").get(
        pk=message.pk
    )
    return MessageSerializer(message).data


@extend_schema_view(
    list=extend_schema(tags=["Chats"]),
    retrieve=extend_schema(tags=["Chats"]),
)
class ChatViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, GenericViewSet):
    """Chats of the authenticated user and their messages."""

    serializer_class = ChatSerializer

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return Chat.objects.none()
        return services.chats_for_user(self.request.user.pk)

    def get_object(self):
        chat = services.get_chat(self.kwargs["pk"])
        services.require_member(chat, self.request.user.pk)
        return chat

    @extend_schema(
        tags=["Chats"],
        request=DirectChatCreateSerializer,
        responses=ChatSerializer,
    )
    @action(detail=False, methods=["post"])
    def direct(self, request):
        serializer = DirectChatCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        chat, created = services.get_or_create_direct_chat(
            request.user, serializer.validated_data["participant_id"]
        )
        return Response(
            ChatSerializer(chat, context=self.get_serializer_context()).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    @extend_schema(
        tags=["Chats"],
        methods=["GET"],
        parameters=[
            OpenApiParameter("page", int),
            OpenApiParameter("limit", int),
        ],
        responses=MessageSerializer(many=True),
    )
    @extend_schema(
        tags=["Chats"],
        methods=["POST"],
        request=MessageCreateSerializer,
        responses=MessageSerializer,
    )
    @action(detail=True, methods=["get", "post"])
    def messages(self, request, pk=None):
        chat = self.get_object()
        if request.method == "POST":
            return self._post_message(request, chat)

        try:
            page = int(request.query_params.get("page", 1))
            limit = int(request.query_params.get("limit", 0)) or None
        except ValueError:
            page, limit = 1, None
        messages, total = services.list_messages(chat, page=page, limit=limit)
        return Response(
            {
                "count": total,
                "page": page,
                "results": MessageSerializer(messages, many=True).data,
            }
        )

    def _post_message(self, request, chat: Chat) -> Response:
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        message = services.post_message(
            chat,
            request.user,
            serializer.validated_data["content"],
            serializer.validated_data.get("message_type"),
        )
        transaction.on_commit(lambda: chat_events.publish_new_message(message))
        return Response(_serialize_message(message), status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Chats"], request=None)
    @action(detail=True, methods=["put"])
    def read(self, request, pk=None):
        chat = self.get_object()
        count = services.mark_chat_read(chat, request.user)
        user = request.user
        transaction.on_commit(
            lambda: chat_events.publish_messages_read(chat, user, count)
        )
        return Response({"chat": chat.pk, "count": count})


@extend_schema_view(
    destroy=extend_schema(tags=["Chats"]),
    partial_update=extend_schema(tags=["Chats"], request=MessageEditSerializer),
)
class MessageViewSet(mixins.DestroyModelMixin, GenericViewSet):
    """Per-message operations under ``/chats/messages/{id}/``."""

    serializer_class = MessageSerializer
    queryset = Message.objects.none()

    def destroy(self, request, *args, **kwargs):
        services.soft_delete_message(kwargs["pk"], request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)

    def partial_update(self, request, *args, **kwargs):
        serializer = MessageEditSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        message = services.edit_message(
            kwargs["pk"], request.user, serializer.validated_data["content"]
        )
        return Response(_serialize_message(message))

    @extend_schema(tags=["Chats"], request=ReactionSerializer)
    @action(detail=True, methods=["post"])
    def react(self, request, pk=None):
        serializer = ReactionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        added = services.toggle_reaction(
            pk, request.user, serializer.validated_data["emoji"]
        )
        message = services.get_message(pk)
        return Response({"added": added, "message": _serialize_message(message)})

    @extend_schema(tags=["Chats"], request=AnswerSerializer, responses=MessageSerializer)
    @action(detail=True, methods=["post"])
    def answer(self, request, pk=None):
        serializer = AnswerSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        answer = services.answer_question(
            pk, request.user, serializer.validated_data["answer"]
        )
        transaction.on_commit(lambda: chat_events.publish_new_message(answer))
        return Response(_serialize_message(answer), status=status.HTTP_201_CREATED)
