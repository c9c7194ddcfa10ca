# /main.py
# Starts the dashboard API: logging, config validation, then the HTTP server.
import uvicorn

from cexdash.core.config import settings
from cexdash.core.config_validator import validate as validate_config
from cexdash.core.logger import configure_logging, get_logger

def main():
    configure_logging()
    log = get_logger("cexdash.system")
    validate_config()

    from cexdash.core.control_api import app

    log.info("HTTP_SERVER_STARTING", host=settings.HTTP_HOST, port=settings.HTTP_PORT, mock=settings.USE_MOCK_SERVER)
    uvicorn.run(
        app,
        host=settings.HTTP_HOST,
        port=settings.HTTP_PORT,
        log_level=settings.LOG_LEVEL.lower(),
        proxy_headers=True,
        forwarded_allow_ips=settings.FORWARDED_ALLOW_IPS,
    )

if __name__ == "__main__":
    main()
