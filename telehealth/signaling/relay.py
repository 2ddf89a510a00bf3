import logging
from typing import Any

from telehealth.signaling.connection import Connection
from telehealth.signaling.registry import SessionRegistry

logger = logging.getLogger(__name__)

# inbound kind -> kind delivered to the peer
RELAYED_KINDS = {
    'offer': 'offer',
    'answer': 'answer',
    'ice-candidate': 'ice-candidate',
    'send-message': 'receive-message',
    'chat-message': 'receive-message',
}


class SignalingRelay:
    """Forwards opaque signaling and chat payloads to the sender's peer."""

    def __init__(self, registry: SessionRegistry):
        self._registry = registry

    async def relay(self, room_id: str, sender: Connection, kind: str, payload: Any) -> int:
        outbound_kind = RELAYED_KINDS.get(kind)
        if outbound_kind is None:
            raise ValueError(f'{kind!r} is not a relayed message kind.')

        recipients = self._registry.members_of(room_id, exclude=sender)
        if not recipients:
            logger.debug('No peer in room %s for %s from %s; dropped', room_id, kind, sender.user_id)
            return 0

        delivered = 0
        for recipient in recipients:
            if await recipient.send({'type': outbound_kind, 'payload': payload}):
                delivered += 1
        return delivered
