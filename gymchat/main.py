import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from gymchat.database.connection import close_mongo_connection, connect_to_mongo, get_database
from gymchat.errors import (
    AttachmentUploadError,
    BackendError,
    GymChatError,
    MalformedResponse,
    MessageNotEditable,
    MessageNotFound,
    PermissionDenied,
)
from gymchat.repositories.message_repository import MessageRepository
from gymchat.routers.chat import router as chat_router
from gymchat.routers.storage import router as storage_router


logger = logging.getLogger(__name__)

ERROR_STATUS = (
    (PermissionDenied, 403),
    (MessageNotFound, 404),
    (MessageNotEditable, 409),
    (AttachmentUploadError, 502),
    (MalformedResponse, 502),
    (BackendError, 503),
)


@asynccontextmanager
async def lifespan(app: FastAPI):

    await connect_to_mongo()
    try:
        await MessageRepository(get_database()).ensure_indexes()
        yield
    finally:
        await close_mongo_connection()


async def gymchat_error_handler(request: Request, exc: GymChatError):
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            break
    else:
        status_code = 500
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc) or type(exc).__name__})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GymChatError, gymchat_error_handler)


app = FastAPI(title="GymChat messaging", lifespan=lifespan)
register_error_handlers(app)

app.include_router(chat_router)
app.include_router(storage_router)


@app.get("/")
async def root():

    db = get_database()
    collections = await db.list_collection_names()
    return {"message": "Connected to MongoDB!", "collections": collections}
