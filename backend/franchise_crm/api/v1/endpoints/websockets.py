"""
Change Stream WebSocket
Pushes partition change events to open views so they can re-read
"""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from franchise_crm.core.identity_middleware import resolve_viewer_tenant
from franchise_crm.domain.models.change_event import ChangeEvent
from franchise_crm.domain.models.modules import ModuleType

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websockets"])

# Events buffered per connection before the oldest are dropped
OUTBOX_SIZE = 100


class ChangeOutbox:
    """
    Per-connection event buffer.

    offer() runs inside the publishing write and never touches the socket;
    drain_to() sends from a separate task.
    """

    def __init__(self, maxsize: int = OUTBOX_SIZE):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self, event: ChangeEvent) -> None:
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
            logger.warning(f"Change stream is behind, dropped oldest event ({self.dropped} total)")
        self.queue.put_nowait(event)

    async def drain_to(self, websocket: WebSocket) -> None:
        while True:
            event = await self.queue.get()
            try:
                await websocket.send_text(event.to_json())
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.debug(f"Change stream send stopped: {e}")
                return


@router.websocket("/ws/changes/{module}")
async def change_stream(
    websocket: WebSocket,
    module: ModuleType,
    tenant_id: Optional[str] = Query(None),
    token: Optional[str] = Query(None)
):
    """
    Stream ChangeEvents for module.

    Head office receives events for every tenant; franchises only for
    their own partition. Identity comes from `token` (JWT) or `tenant_id`
    query parameters, since browsers cannot set headers on WebSockets.
    """
    container = websocket.app.state.container
    settings = container.settings

    viewer = resolve_viewer_tenant(
        f"Bearer {token}" if token else None,
        tenant_id,
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
    if not viewer:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    identity = container.identity_for(viewer)
    await websocket.accept()

    outbox = ChangeOutbox()

    async def forward(event: ChangeEvent) -> None:
        if identity.is_privileged or event.tenant_id == identity.viewer_tenant:
            outbox.offer(event)

    output_task = asyncio.create_task(outbox.drain_to(websocket))
    subscription = await container.notifier.subscribe(module.value, forward)
    logger.info(f"Change stream opened: {viewer} on {module.value}")

    try:
        while True:
            # Client messages are only keep-alives
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"Change stream closed: {viewer} on {module.value}")
    finally:
        await subscription.cancel()
        output_task.cancel()
        try:
            await output_task
        except asyncio.CancelledError:
            pass
