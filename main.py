"""
ORACLE TRADER — Main Entry Point
Serves the trade-decision API.
"""
import uvicorn
from oracle_trader.config.settings import get_settings
from oracle_trader.utils.logger import setup_logging, get_logger

logger = get_logger("main")


def run_api():
    """Run the FastAPI application."""
    settings = get_settings()
    setup_logging()
    logger.info("starting_oracle_trader", version=settings.version, port=settings.port)
    uvicorn.run(
        "oracle_trader.api.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run_api()
