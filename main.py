import sys

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from app.api.routes import router
from app.config import get_settings
from app.deps import Services, build_services
from app.errors import (
    DecodeError,
    DuplicateAssetError,
    EmptyInputError,
    InconsistentStoreError,
    InvalidDateError,
    InvalidDateRangeError,
    LedgerError,
    MalformedResponseError,
    NoFinancialDataError,
    NotFoundError,
    ReconcileError,
    TransportError,
)

settings = get_settings()

# Configure loguru
logger.remove()
logger.add(sys.stderr, level=settings.log_level.upper(), format="{time:HH:mm:ss} | {level:<7} | {message}")

ERROR_STATUS: dict[type[LedgerError], int] = {
    EmptyInputError: 400,
    NoFinancialDataError: 400,
    InvalidDateError: 422,
    InvalidDateRangeError: 422,
    NotFoundError: 404,
    DuplicateAssetError: 409,
    TransportError: 502,
    DecodeError: 502,
    MalformedResponseError: 502,
    ReconcileError: 500,
    InconsistentStoreError: 500,
}


def error_status(exc: LedgerError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


def create_app(services: Services | None = None) -> FastAPI:
    app = FastAPI(title="Ledger", version="0.1.0")
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("{} {}", request.method, request.url.path)
        response: Response = await call_next(request)
        logger.info("→ {}", response.status_code)
        return response

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        status = error_status(exc)
        if status >= 500:
            logger.error("{} {} failed: {}", request.method, request.url.path, exc.message)
        body = {"error": exc.code, "detail": exc.message}
        if isinstance(exc, NoFinancialDataError) and exc.reply:
            body["reply"] = exc.reply
        return JSONResponse(status_code=status, content=body)

    app.include_router(router)

    @app.on_event("startup")
    async def startup():
        """Build services if none were injected, then start the Telegram bot."""
        if app.state.services is None:
            app.state.services = build_services(settings)
            logger.info("Ledger database at {}", settings.db_path)

        if not settings.telegram_bot_token:
            logger.warning("TELEGRAM_BOT_TOKEN not set — bot will not start")
            return

        from app.bot.handler import build_bot_app

        bot_app = build_bot_app(settings.telegram_bot_token, app.state.services)
        app.state.bot = bot_app

        # Initialize and start polling in the background
        await bot_app.initialize()
        await bot_app.start()
        await bot_app.updater.start_polling(drop_pending_updates=True)
        logger.info("Telegram bot started (polling)")

    @app.on_event("shutdown")
    async def shutdown():
        """Gracefully stop the Telegram bot."""
        bot_app = getattr(app.state, "bot", None)
        if bot_app:
            await bot_app.updater.stop()
            await bot_app.stop()
            await bot_app.shutdown()
            logger.info("Telegram bot stopped")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
