"""
Main application entry point
"""

import uvicorn
from taskflow.config.settings import settings
from taskflow.utils.logger import logger
from taskflow.web.main import create_app


def main():
    """Validate configuration and serve the API"""
    try:
        settings.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        raise SystemExit(1)

    app = create_app()
    logger.info(f"Starting taskflow on port {settings.WEB_PORT}")
    uvicorn.run(app, host="0.0.0.0", port=settings.WEB_PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
