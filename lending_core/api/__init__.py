"""
Lending Core API Application Factory
"""

from typing import Optional

import uvicorn
from fastapi import FastAPI

from .clients import router as clients_router
from .loans import router as loans_router
from .payments import router as payments_router
from .reports import router as reports_router
from .system import LendingSystem, get_lending_system
from .. import __version__
from ..config import get_config
from ..logging_config import setup_logging


def create_app(system: Optional[LendingSystem] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        system: Pre-built LendingSystem (tests inject one over in-memory
            storage); by default one is built from configuration on first use
    """
    config = get_config()
    setup_logging(level=config.log_level, format_type=config.log_format, log_file=config.log_file)

    app = FastAPI(
        title="Lending Core API",
        description="Loan amortization, installment tracking and collections",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    if system is not None:
        app.dependency_overrides[get_lending_system] = lambda: system

    app.include_router(clients_router, prefix="/clients", tags=["Clients"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(payments_router, prefix="/installments", tags=["Installments"])
    app.include_router(reports_router, prefix="/reports", tags=["Reports"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "lending_core_api",
            "version": __version__
        }

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server with uvicorn"""
    config = get_config()
    uvicorn.run(
        "lending_core.api:create_app",
        factory=True,
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )
