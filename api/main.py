"""Mailbot FastAPI entrypoint: LINE webhook and health check."""

import json
import logging
from contextlib import asynccontextmanager

from fastapi import BackgroundTasks, FastAPI, Request, Response

from mailbot.conversation.engine import ConversationEngine
from mailbot.conversation.store import ConversationStore
from mailbot.core.config import settings
from mailbot.core.observability import flush_traces
from mailbot.drafting.generator import DraftGenerator
from mailbot.gateway.adapter import TransportAdapter
from mailbot.gateway.line_gw import LineGateway
from mailbot.mail.dispatcher import EmailDispatcher

logging.basicConfig(level=getattr(logging, settings.log_level))
logger = logging.getLogger(__name__)

_gateway: LineGateway | None = None
_engine: ConversationEngine | None = None
_adapter: TransportAdapter | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _gateway, _engine, _adapter
    logger.info("Starting Mailbot...")

    _gateway = LineGateway()
    if not _gateway.is_configured:
        logger.warning("LINE credentials missing, webhook replies will fail")

    _engine = ConversationEngine(
        generator=DraftGenerator(),
        dispatcher=EmailDispatcher(),
        store=ConversationStore(ttl_s=settings.session_ttl_s),
    )
    _adapter = TransportAdapter(_engine, _gateway)

    yield

    if _gateway:
        await _gateway.close()
    flush_traces()
    logger.info("Shutting down Mailbot...")


app = FastAPI(title="Mailbot", lifespan=lifespan)


@app.get("/health")
async def health():
    sessions = len(_engine.store) if _engine else 0
    return {"status": "ok", "sessions": sessions}


# ------------------------------------------------------------------
# LINE webhook
# ------------------------------------------------------------------
@app.post("/callback")
async def line_callback(request: Request, background_tasks: BackgroundTasks):
    """Handle LINE Messaging API webhook deliveries."""
    if not _gateway or not _adapter:
        return Response(status_code=503)

    body = await request.body()
    signature = request.headers.get("x-line-signature", "")

    if settings.line_channel_secret or settings.is_production:
        if not _gateway.verify_signature(body, signature):
            logger.warning("Rejected webhook with bad signature")
            return Response(status_code=400)

    try:
        payload = json.loads(body or b"{}")
    except json.JSONDecodeError:
        return Response(status_code=400)

    messages = _gateway.parse_webhook(payload)
    if messages:
        # Answer LINE immediately; late replies fall back to push
        background_tasks.add_task(_adapter.dispatch, messages)

    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host="0.0.0.0", port=settings.port)
