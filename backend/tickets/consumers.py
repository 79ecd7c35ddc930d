import logging

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from tickets.conf import ticket_settings

logger = logging.getLogger(__name__)


class TicketEventConsumer(AsyncJsonWebsocketConsumer):
    """Read-only feed of ticket events for the floor dashboard."""

    async def connect(self):
        user = self.scope.get("user")
        if user is None or not user.is_authenticated:
            logger.info("Rejected unauthenticated ticket event socket")
            await self.close()
            return

        self.group_name = ticket_settings.event_group
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()
        logger.info(f"Ticket event socket connected for user {user.pk}")

    async def disconnect(self, close_code):
        group_name = getattr(self, "group_name", None)
        if group_name:
            await self.channel_layer.group_discard(group_name, self.channel_name)

    async def receive_json(self, content, **kwargs):
        if content.get("action") == "ping":
            await self.send_json({"type": "pong"})

    async def ticket_event(self, message):
        await self.send_json(message["event"])
