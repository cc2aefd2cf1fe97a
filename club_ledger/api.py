"""
FastAPI REST API Module

ASGI application for the club ledger and the server runner used by run.py.
"""

import uvicorn

from .api_modular import create_app
from .config import get_config


app = create_app()


def run_server(host: str = None, port: int = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    uvicorn.run(
        "club_ledger.api:app",
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )
