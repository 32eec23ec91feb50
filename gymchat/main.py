import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gymchat.core.config import get_settings
from gymchat.core.errors import ChatError
from gymchat.core.logging_config import configure_logging
from gymchat.database.connection import close_mongo_connection, connect_to_mongo
from gymchat.routers.chat import router as chat_router
from gymchat.routers.conversations import router as conversations_router
from gymchat.routers.groups import router as groups_router
from gymchat.routers.members import router as members_router
from gymchat.utils.realtime_bus import close_bus, get_bus


logger = logging.getLogger(__name__)

settings = get_settings()
configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):

    await connect_to_mongo()
    await get_bus()
    try:
        yield
    finally:
        await close_bus()
        await close_mongo_connection()


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    # every failure reaches the client as a short message it can show as a toast
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(chat_router)
app.include_router(conversations_router)
app.include_router(groups_router)
app.include_router(members_router)


@app.get("/")
async def root():

    return {"message": f"{settings.app_name} is running"}
