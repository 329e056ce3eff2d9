"""
Ledger API Application Factory

REST presentation of the ledger engine: accounts, balances, history,
deposits and transfers.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import uvicorn

from .accounts import router as accounts_router
from .transactions import router as transactions_router
from .. import __version__
from ..errors import ErrorKind, LedgerError


STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_OPERATION: 400,
    ErrorKind.INSUFFICIENT_FUNDS: 400,
    ErrorKind.VALIDATION: 422,
    ErrorKind.UNAVAILABLE: 503,
}


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Map typed ledger failures to HTTP status codes"""
    return JSONResponse(
        status_code=STATUS_BY_KIND.get(exc.kind, 400),
        content=exc.to_dict()
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Ledger Core API",
        description="Single-currency ledger with atomic deposits and transfers",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_exception_handler(LedgerError, ledger_error_handler)

    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(transactions_router, prefix="/transactions", tags=["Transactions"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "ledger_core_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Ledger Core API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "accounts": "/accounts",
                "transactions": "/transactions"
            }
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8090, log_level: str = "info"):
    """Run the API server"""
    uvicorn.run(app, host=host, port=port, log_level=log_level)
