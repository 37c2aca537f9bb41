"""
Debt Escrow API Application Factory
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
import uvicorn

from .. import __version__
from ..errors import (
    DebtLedgerError, UnauthorizedError, DebtNotFoundError, InvalidStateError,
    TimingViolationError
)
from ..gateways import TransferError
from ..logging_config import get_logger
from .admin import router as admin_router
from .debts import router as debts_router
from .events import router as events_router

logger = get_logger("debt_escrow.api")


def _status_for(exc: DebtLedgerError) -> int:
    if isinstance(exc, UnauthorizedError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, DebtNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, (InvalidStateError, TimingViolationError)):
        return status.HTTP_409_CONFLICT
    return status.HTTP_422_UNPROCESSABLE_ENTITY


def register_error_handlers(app: FastAPI) -> None:
    """Map ledger and transfer errors to HTTP responses"""

    @app.exception_handler(DebtLedgerError)
    async def ledger_error_handler(request: Request, exc: DebtLedgerError):
        return JSONResponse(
            status_code=_status_for(exc),
            content={"error": {"code": exc.code, "message": str(exc)}}
        )

    @app.exception_handler(TransferError)
    async def transfer_error_handler(request: Request, exc: TransferError):
        logger.warning(f"Transfer refused on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            content={"error": {"code": exc.code, "message": str(exc)}}
        )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Debt Escrow Ledger API",
        description="Escrowed interest-bearing debts with a hash-chained event log",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    register_error_handlers(app)

    app.include_router(debts_router, prefix="/debts", tags=["Debts"])
    app.include_router(events_router, prefix="/events", tags=["Events"])
    app.include_router(admin_router, prefix="/admin", tags=["Admin"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "debt_escrow_api",
            "version": __version__
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8095, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "debt_escrow.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
