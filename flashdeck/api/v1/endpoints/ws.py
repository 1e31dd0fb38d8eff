# flashdeck/api/v1/endpoints/ws.py
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from flashdeck.realtime import events

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    manager = websocket.app.state.broadcaster
    await manager.connect(websocket)
    try:
        while True:
            text = await websocket.receive_text()
            # keep-alive from the client; anything else is ignored
            if text == "ping":
                await manager.send(websocket, events.PONG, {})
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)
