"""FastAPI application factory."""

from fastapi import FastAPI, Request, Response

from clinic_relay.config import RelaySettings
from clinic_relay.observability.correlation import CORRELATION_ID_HEADER, correlation_scope
from clinic_relay.relay.hub import RelayHub

from .routes import health, live, messages, webhooks_whatsapp


def create_app(
    settings: RelaySettings | None = None,
    hub: RelayHub | None = None,
) -> FastAPI:
    """Create the relay app.

    Args:
        settings: Explicit settings. If None, read from the environment.
        hub: Connection hub to serve. If None, a fresh one is created. One hub
             per process; a second worker process would not see its connections.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="Clinic Relay",
        docs_url=None,
        redoc_url=None,
    )
    app.state.settings = settings if settings is not None else RelaySettings.from_env()
    app.state.hub = hub if hub is not None else RelayHub()

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        with correlation_scope(request.headers.get(CORRELATION_ID_HEADER)) as cid:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response

    app.include_router(health.router)
    app.include_router(webhooks_whatsapp.router)
    app.include_router(messages.router)
    app.include_router(live.router)

    return app
