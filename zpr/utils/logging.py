"""Process-wide log configuration and optional Logfire tracing."""

import logging
import sys

from zpr import __version__
from zpr.config.settings import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# HTTP and SDK clients log every request at INFO; reviews make many of them
NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "github", "openai")


def setup_logging(level: str | None = None) -> None:
    """Send all records to stdout at the configured level.

    Args:
        level: Level name overriding settings.log_level
    """
    logging.basicConfig(
        level=getattr(logging, level or settings.log_level),
        format=LOG_FORMAT,
        stream=sys.stdout,
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_observability() -> None:
    """Configure logging, then Logfire when LOGFIRE_TOKEN is set.

    Outbound httpx calls (Azure DevOps, Ollama, token endpoints) are traced.
    FastAPI is instrumented separately once the app exists.
    """
    setup_logging()
    logger = logging.getLogger(__name__)

    if not settings.logfire_token:
        logger.info("LOGFIRE_TOKEN not set, tracing disabled")
        return

    import logfire

    logfire.configure(
        token=settings.logfire_token,
        service_name="zpr",
        service_version=__version__,
        environment=settings.environment,
    )
    logfire.instrument_httpx()
    logger.info(f"Logfire tracing enabled ({settings.environment})")
