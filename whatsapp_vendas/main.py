import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated

from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.responses import JSONResponse
from openai import AsyncOpenAI
from sqlalchemy.orm import Session

from whatsapp_vendas.admin_commands import UNKNOWN_COMMAND, AdminCommandProcessor
from whatsapp_vendas.ai_engine import SalesAssistant
from whatsapp_vendas.config import settings
from whatsapp_vendas.gateway import EvolutionGateway
from whatsapp_vendas.logging_utils import RequestLoggingMiddleware, log_webhook_data, setup_logging
from whatsapp_vendas.memory import create_context
from whatsapp_vendas.metrics import get_metrics, get_metrics_content_type, record_webhook_outcome
from whatsapp_vendas.models import KIND_ADMIN, KIND_BOT, KIND_CUSTOMER
from whatsapp_vendas.schemas import (
    ConversationResponse,
    ConversationsListResponse,
    ErrorResponse,
    HealthResponse,
    StatusResponse,
    WebhookRequest,
    WebhookResponse,
)
from whatsapp_vendas.storage import (
    check_db_health,
    get_db,
    init_db,
    is_admin,
    list_conversations,
    save_conversation,
)
from whatsapp_vendas.utils import normalize_phone


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

TARGET_EVENT = "messages.upsert"
INTERNAL_ERROR_MESSAGE = "Erro interno ao processar mensagem"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: create tables, conversation state and external clients
    - Shutdown: close the HTTP clients
    """
    init_db()

    context = create_context(settings)
    openai_client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
    gateway = EvolutionGateway(
        base_url=settings.EVOLUTION_API_URL,
        api_key=settings.EVOLUTION_API_KEY,
        instance_name=settings.INSTANCE_NAME,
    )

    app.state.context = context
    app.state.gateway = gateway
    app.state.assistant = SalesAssistant(
        client=openai_client,
        sessions=context.sessions,
        model=settings.OPENAI_MODEL,
        temperature=settings.OPENAI_TEMPERATURE,
        max_tokens=settings.OPENAI_MAX_TOKENS,
    )
    app.state.admin_processor = AdminCommandProcessor(pending=context.pending)
    logger.info(f"WhatsApp AI Vendas started (instance={settings.INSTANCE_NAME})")

    yield

    await gateway.aclose()
    await openai_client.close()


app = FastAPI(
    title="WhatsApp AI Vendas",
    description="WhatsApp sales assistant: admin commands and AI-driven customer conversations",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Dependencies
# =============================================================================

def get_gateway(request: Request) -> EvolutionGateway:
    return request.app.state.gateway


def get_assistant(request: Request) -> SalesAssistant:
    return request.app.state.assistant


def get_admin_processor(request: Request) -> AdminCommandProcessor:
    return request.app.state.admin_processor


# =============================================================================
# Status Routes
# =============================================================================

@app.get("/", response_model=StatusResponse)
async def root() -> StatusResponse:
    return StatusResponse(
        status="online",
        message="🤖 WhatsApp AI Vendas",
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@app.get("/health", response_model=HealthResponse, response_model_exclude_none=True)
async def health() -> HealthResponse:
    """Liveness probe - always healthy once the app is running."""
    return HealthResponse(status="healthy")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the store is reachable and its
    tables exist, 503 otherwise.
    """
    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )
    return HealthResponse(status="ready")


# =============================================================================
# Webhook Route
# =============================================================================

def _ignored(request: Request, phone: str = None) -> WebhookResponse:
    record_webhook_outcome("ignored")
    log_webhook_data(request, phone=phone, result="ignored")
    return WebhookResponse(status="ignored")


@app.post(
    "/webhook",
    response_model=WebhookResponse,
    responses={
        500: {"model": ErrorResponse, "description": "Processing failed"},
        422: {"description": "Validation error"},
    }
)
async def webhook(
    request: Request,
    payload: WebhookRequest,
    db: Session = Depends(get_db),
    gateway: EvolutionGateway = Depends(get_gateway),
    assistant: SalesAssistant = Depends(get_assistant),
    admin_processor: AdminCommandProcessor = Depends(get_admin_processor),
):
    """
    Handle an Evolution API event.

    - Non-message events, the bot's own sends and messages without text
      are ignored
    - Admin slash-commands (and pending admin wizards) go to the command
      processor, everything else to the AI sales assistant
    - The reply is sent through the gateway and logged
    """
    if payload.event != TARGET_EVENT:
        logger.debug(f"Ignoring event: {payload.event}")
        return _ignored(request)

    if payload.from_me():
        return _ignored(request)

    sender = payload.sender()
    text = payload.text()
    if not sender or not text.strip():
        return _ignored(request)

    phone = normalize_phone(sender)
    logger.info(f"💬 {phone}: {text}")
    route = None

    try:
        save_conversation(db, phone, text, KIND_CUSTOMER)
        admin = is_admin(db, phone)

        if admin and admin_processor.is_command(text):
            route = "admin"
            reply = admin_processor.process(db, phone, text)
            if reply:
                await gateway.send_text(phone, reply)
                save_conversation(db, phone, reply, KIND_ADMIN)
            else:
                await gateway.send_text(phone, UNKNOWN_COMMAND)
        else:
            reply = admin_processor.continue_wizard(db, phone, text) if admin else None
            if reply is not None:
                route = "wizard"
                await gateway.send_text(phone, reply)
                save_conversation(db, phone, reply, KIND_ADMIN)
            else:
                route = "customer"
                reply = await assistant.reply(db, phone, text)
                await gateway.send_text(phone, reply)
                save_conversation(db, phone, reply, KIND_BOT)

    except Exception:
        logger.exception(f"Failed to process message from {phone}")
        db.rollback()
        record_webhook_outcome("error")
        log_webhook_data(request, phone=phone, route=route, result="error")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": INTERNAL_ERROR_MESSAGE},
        )

    record_webhook_outcome("success")
    log_webhook_data(request, phone=phone, route=route, result="success")
    return WebhookResponse(status="success")


# =============================================================================
# Conversation Log Route
# =============================================================================

@app.get("/conversas", response_model=ConversationsListResponse)
async def get_conversations(
    limit: Annotated[int, Query(ge=1, le=100, description="Maximum number of records to return")] = 50,
    offset: Annotated[int, Query(ge=0, description="Number of records to skip")] = 0,
    telefone: Annotated[str | None, Query(description="Filter by phone (any format)")] = None,
    tipo: Annotated[str | None, Query(description="Filter by type: cliente, bot or admin")] = None,
    db: Session = Depends(get_db)
) -> ConversationsListResponse:
    """
    List the conversation log, oldest first, with pagination and filtering.
    """
    phone = normalize_phone(telefone) if telefone else None
    records, total = list_conversations(db, limit=limit, offset=offset, phone=phone, kind=tipo)

    return ConversationsListResponse(
        data=[
            ConversationResponse(
                id=record.id,
                phone=record.phone,
                message=record.message,
                kind=record.kind,
                created_at=record.created_at,
            )
            for record in records
        ],
        total=total,
        limit=limit,
        offset=offset,
    )


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )


def run() -> None:
    """Console entry point: serve the app on PORT."""
    import uvicorn

    uvicorn.run("whatsapp_vendas.main:app", host="0.0.0.0", port=settings.PORT)
