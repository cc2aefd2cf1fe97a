"""
Club Ledger API Application Factory
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .members import router as members_router
from .loans import router as loans_router
from .transactions import router as transactions_router
from .stats import router as stats_router
from .admin import router as admin_router
from .. import __version__
from ..config import get_config
from ..errors import LedgerError, ValidationError, NotFoundError, ConflictError, InvalidStateError
from ..logging_config import get_logger


ERROR_STATUS_CODES = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    InvalidStateError: 409,
}

logger = get_logger("club_ledger.api")


def status_code_for(error: LedgerError) -> int:
    for error_type, code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_type):
            return code
    return 400


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    config = get_config()
    app = FastAPI(
        title="Club Ledger API",
        description="Member contributions, loans and the club transaction ledger",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        code = status_code_for(exc)
        logger.info(f"{request.method} {request.url.path} -> {code}: {exc.message}")
        return JSONResponse(
            status_code=code,
            content={"detail": exc.message, "error": exc.kind, "details": exc.details}
        )

    app.include_router(members_router, prefix="/members", tags=["Members"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(transactions_router, prefix="/transactions", tags=["Transactions"])
    app.include_router(stats_router, prefix="/stats", tags=["Statistics"])
    app.include_router(admin_router, prefix="/admin", tags=["Admin"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "club_ledger_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Club Ledger API",
            "club": config.club_name,
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "members": "/members",
                "loans": "/loans",
                "transactions": "/transactions",
                "stats": "/stats/dashboard",
                "admin": "/admin",
            }
        }

    return app
