"""
Live collection subscriptions

Clients receive the current snapshot on connect and a fresh snapshot after
every committed write to the collection.
"""
import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder

from dispatch.api.deps import get_gateway
from dispatch.repositories.gateway import CollectionGateway, UnknownCollectionError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["subscriptions"])


@router.websocket("/ws/{collection}")
async def subscribe(
    websocket: WebSocket,
    collection: str,
    gateway: CollectionGateway = Depends(get_gateway)
):
    # Writes may commit on another thread's event loop
    loop = asyncio.get_running_loop()
    snapshots: asyncio.Queue = asyncio.Queue()
    
    # Subscribe before reading the initial snapshot so no write is missed in between
    try:
        unsubscribe = gateway.subscribe(
            collection, lambda docs: loop.call_soon_threadsafe(snapshots.put_nowait, docs)
        )
    except UnknownCollectionError as e:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(e))
        return
    
    async def forward():
        while True:
            docs = await snapshots.get()
            await websocket.send_json(jsonable_encoder(docs))
    
    sender = None
    try:
        await websocket.accept()
        await websocket.send_json(jsonable_encoder(await gateway.list(collection)))
        sender = asyncio.create_task(forward())
        logger.info("✓ Subscriber attached to %s", collection)
        while True:
            # Incoming messages are ignored; receiving only detects the disconnect
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Subscriber left %s", collection)
    finally:
        unsubscribe()
        if sender is not None:
            sender.cancel()
