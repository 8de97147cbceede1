"""FastAPI WebSocket server for gesture UNO."""

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from config import config
from handlers import HANDLERS, ConnectionContext
from logging_config import connection_id_var, setup_logging
from predictor import PredictionMessage
from routers.health import router as health_router, set_health_dependencies
from table import Table, TableSettings

# Initialize Sentry if configured
if config.SENTRY_DSN:
    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.starlette import StarletteIntegration

        sentry_sdk.init(
            dsn=config.SENTRY_DSN,
            environment=config.ENVIRONMENT,
            traces_sample_rate=0.1 if config.ENVIRONMENT == "production" else 1.0,
            integrations=[
                StarletteIntegration(transaction_style="endpoint"),
                FastApiIntegration(transaction_style="endpoint"),
            ],
        )
        logging.getLogger(__name__).info("Sentry error tracking initialized")
    except ImportError:
        logging.getLogger(__name__).warning("sentry-sdk not installed, error tracking disabled")

# Configure logging based on environment
setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)

# Close code sent to connections turned away from a full table
TABLE_FULL_CLOSE_CODE = 4003

table = Table(TableSettings.from_config(config))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    set_health_dependencies(table=table)
    logger.info(
        f"Gesture UNO server started (environment={config.ENVIRONMENT}, "
        f"seats={table.settings.num_seats})"
    )

    yield

    logger.info("Shutdown initiated...")
    await table.shutdown()
    for client in list(table.clients.values()):
        await client.close(code=1001, reason="Server shutting down")
    logger.info("Shutdown complete")


app = FastAPI(
    title="Gesture UNO",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Player connection: one socket per seat."""
    await websocket.accept()

    connection_id = str(uuid.uuid4())
    connection_id_var.set(connection_id)
    logger.debug(f"Player socket connected as {connection_id}")

    client = await table.join(websocket, connection_id)
    if client is None:
        await websocket.send_json({"type": "error", "message": "Table is full"})
        await websocket.close(code=TABLE_FULL_CLOSE_CODE, reason="Table is full")
        return

    ctx = ConnectionContext(websocket=websocket, connection_id=connection_id)

    # Shared dependencies passed to every handler
    handler_deps = dict(
        table=table,
        allow_client_actions=config.ALLOW_CLIENT_ACTIONS,
    )

    reason = "disconnected"
    try:
        while True:
            data = await websocket.receive_json()
            handler = HANDLERS.get(data.get("type"))
            if handler:
                await handler(data, ctx, **handler_deps)
    except WebSocketDisconnect as e:
        reason = f"disconnected (code {e.code})"
    finally:
        await table.leave(connection_id, reason)


@app.websocket("/ws/predictor")
async def predictor_endpoint(websocket: WebSocket):
    """Classifier connection: pushes gesture predictions for any seat."""
    await websocket.accept()
    logger.info("Classifier connected")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = PredictionMessage.model_validate_json(raw)
            except ValidationError as e:
                logger.warning(f"Invalid prediction message: {e.errors()}")
                await websocket.send_json({"type": "error", "message": "Invalid prediction"})
                continue
            if not table.predictor.publish(message):
                logger.debug(f"No binding for seat {message.seat_index}, prediction dropped")
    except WebSocketDisconnect:
        logger.info("Classifier disconnected")


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting gesture UNO server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
