from contextlib import asynccontextmanager

from fastapi import FastAPI

from support_chat.core.config import settings
from support_chat.core.logging import configure_logging
from support_chat.database.connection import close_mongo_connection, connect_to_mongo, get_database
from support_chat.dependencies import reset_memory_backends
from support_chat.repositories.message_repository import MessageRepository
from support_chat.routers.chat import manager
from support_chat.routers.chat import router as chat_router
from support_chat.routers.conversations import router as conversations_router
from support_chat.utils.realtime_bus import close_bus, get_bus


@asynccontextmanager
async def lifespan(app: FastAPI):

    configure_logging()
    if settings.STORE_PROVIDER == "mongo":
        await connect_to_mongo()
        await MessageRepository(get_database(), await get_bus()).ensure_indexes()
    try:
        yield
    finally:
        await manager.close_all()
        await close_bus()
        reset_memory_backends()
        if settings.STORE_PROVIDER == "mongo":
            await close_mongo_connection()


app = FastAPI(title="Storefront Support Messaging", lifespan=lifespan)


app.include_router(chat_router)
app.include_router(conversations_router)


@app.get("/")
async def root():

    bus = await get_bus()
    return {"status": "ok", "store": settings.STORE_PROVIDER, "bus": bus.enabled}
