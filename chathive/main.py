import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chathive.config import Config
from chathive.db.base import dispose_db, init_db
from chathive.domains.messaging.handlers import messaging_router
from chathive.domains.whatsapp.handlers import whatsapp_webhook_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db("postgres")
    logger.info("Database engine created")
    yield
    await dispose_db()
    logger.info("Database engine disposed")


app = FastAPI(title="ChatHive API", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(whatsapp_webhook_router)
app.include_router(messaging_router)


@app.get("/health")
def health_check() -> dict[str, str]:
    return {"status": "ok"}
