from fastapi import FastAPI

from edubot.config import settings
from edubot.database import Base, engine
from edubot.logging_config import get_logger, setup_logging
from edubot.routers import webhook
from edubot.services.handlers.admin import drain_broadcasts
from edubot.services.inbound_service import build_processor
from edubot.services.message_log_service import MessageLogService

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="EduFiliova WhatsApp Bot",
    description="Conversation engine for the EduFiliova WhatsApp channel",
    version="0.1.0",
)

app.include_router(webhook.router)

app.state.message_log = MessageLogService()
app.state.processor = build_processor(settings, app.state.message_log)


@app.on_event("startup")
async def create_tables() -> None:
    if not settings.auto_create_tables:
        return
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")


@app.on_event("shutdown")
async def finish_broadcasts() -> None:
    await drain_broadcasts()


@app.get("/health")
async def health():
    sender = app.state.processor.sender
    return {
        "status": "ok",
        "message_log": app.state.message_log.stats(),
        "send_failures": getattr(sender, "send_failures", 0),
    }
