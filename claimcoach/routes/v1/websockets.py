from uuid import UUID

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from claimcoach.core.websockets.manager import manager
import logging

logger = logging.getLogger(__name__)
router = APIRouter()

@router.websocket("/claims/{claim_id}")
async def claim_events(websocket: WebSocket, claim_id: UUID):
    """
    Domain events for one claim, pushed as JSON as they happen.
    Clients may send anything; it is only read to detect disconnects.
    """
    room_id = str(claim_id)
    logger.info(f"WebSocket attempt for claim: {room_id}")
    await manager.connect(websocket, room_id)
    try:
        while True:
            data = await websocket.receive_text()
            logger.debug(f"Received from {room_id}: {data}")
    except WebSocketDisconnect:
        manager.disconnect(websocket, room_id)
        logger.info(f"Client disconnected from claim: {room_id}")
    except Exception as e:
        logger.error(f"WebSocket error for claim {room_id}: {type(e).__name__}: {e}")
        manager.disconnect(websocket, room_id)
