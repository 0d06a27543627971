import logging
import sys

import uvicorn

from ridedispatch.api.app import create_app
from ridedispatch.core.exceptions import ConfigurationError
from ridedispatch.dispatch_logging.setup import setup_logging
from ridedispatch.service import build_service
from ridedispatch.settings import get_settings

logger = logging.getLogger(__name__)


def main() -> None:
    try:
        settings = get_settings()
    except ConfigurationError as e:
        # Logging is not configured yet; settings decide its format
        print(e.message, file=sys.stderr)
        sys.exit(1)

    setup_logging(
        level=settings.service.log_level,
        json_output=settings.service.log_format == "json",
        environment=settings.service.environment,
    )

    service = build_service(settings)
    app = create_app(service)

    logger.info(f"Starting ride dispatch API on {settings.service.host}:{settings.service.port}")
    uvicorn.run(app, host=settings.service.host, port=settings.service.port, log_config=None)


if __name__ == "__main__":
    main()
