from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends
import logging

from pydantic import ValidationError

from branchplayer.api.deps import get_session_ws, get_ws_manager_ws
from branchplayer.models.events import DriverMessage, WsEvent

log = logging.getLogger("ws")

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    session = Depends(get_session_ws),
    ws_manager = Depends(get_ws_manager_ws),
):
    await ws_manager.connect(websocket)
    log.info("ws_connected_frontend")

    try:
        # current state first, so a reconnecting screen is never blank
        await websocket.send_json(
            WsEvent(type="state", data=session.ctx.snapshot()).model_dump(mode="json")
        )

        while True:
            raw = await websocket.receive_json()
            try:
                msg = DriverMessage.model_validate(raw)
            except ValidationError:
                log.debug("ws_unknown_msg", extra={"raw": raw})
                continue

            # =========================
            # AUDIO DRIVER REPORTS
            # =========================
            if msg.type == "playback":
                session.queue.set_playing(bool(msg.data.get("isPlaying")))
            elif msg.type == "ended":
                await session.queue.on_song_ended()

    except WebSocketDisconnect:
        pass
    except Exception as e:
        log.warning("ws_connection_closed", extra={"error": str(e)})
    finally:
        await ws_manager.disconnect(websocket)
        log.info("ws_disconnected_frontend")
