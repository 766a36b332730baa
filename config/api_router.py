from django.conf import settings
from rest_framework.routers import DefaultRouter
from rest_framework.routers import SimpleRouter

from baycation.chat.api.views import ChatViewSet
from baycation.chat.api.views import MessageViewSet
from baycation.trips.api.views import TripViewSet
from baycation.users.api.views import UserViewSet

router = DefaultRouter() if settings.DEBUG else SimpleRouter()

router.register("users", UserViewSet)
router.register("trips", TripViewSet, basename="trips")
# Registered before "chats" so /chats/messages/{id}/ is not read as a chat id.
router.register("chats/messages", MessageViewSet, basename="chat-messages")
router.register("chats", ChatViewSet, basename="chats")


app_name = "api"
urlpatterns = router.urls
