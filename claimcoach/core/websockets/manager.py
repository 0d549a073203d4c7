from typing import List, Dict
from fastapi import WebSocket
import logging

from claimcoach.core.events.bus import DomainEvent, EventBus

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Websocket rooms keyed by claim id; every domain event for a claim is pushed to its room."""

    def __init__(self):
        self.rooms: Dict[str, List[WebSocket]] = {}

    def room_size(self, claim_id: str) -> int:
        return len(self.rooms.get(claim_id, []))

    async def connect(self, websocket: WebSocket, claim_id: str):
        await websocket.accept()
        self.rooms.setdefault(claim_id, []).append(websocket)
        logger.info(f"Claim {claim_id} watcher connected ({self.room_size(claim_id)} in room)")

    def disconnect(self, websocket: WebSocket, claim_id: str):
        room = self.rooms.get(claim_id)
        if not room or websocket not in room:
            return
        room.remove(websocket)
        if not room:
            del self.rooms[claim_id]
        logger.info(f"Claim {claim_id} watcher disconnected")

    async def broadcast(self, message: str, claim_id: str):
        for connection in list(self.rooms.get(claim_id, [])):
            try:
                await connection.send_text(message)
            except Exception as e:
                # a socket that cannot be written to is gone
                logger.warning(f"Dropping watcher of claim {claim_id}: {e}")
                self.disconnect(connection, claim_id)

    async def on_domain_event(self, event: DomainEvent):
        await self.broadcast(event.to_json(), str(event.claim_id))

    def attach(self, bus: EventBus):
        bus.subscribe(self.on_domain_event)


manager = ConnectionManager()
