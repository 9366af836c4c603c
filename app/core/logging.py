import logging
import sys

import structlog
from pythonjsonlogger import jsonlogger

from app.config import Settings


def setup_logging(settings: Settings):
    """Structured logging setup: JSON lines in production, console output otherwise"""

    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    processors = [
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if settings.log_json:
        # Event dict travels as LogRecord extras; JsonFormatter emits them as fields
        processors.append(structlog.stdlib.render_to_log_kwargs)
        formatter = jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s"
        )
    else:
        processors.append(structlog.dev.ConsoleRenderer())
        formatter = logging.Formatter("%(message)s")

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Root logger also carries uvicorn and sqlalchemy records
    root = logging.getLogger()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root.handlers = [handler]
    root.setLevel(level)

    return structlog.get_logger()
