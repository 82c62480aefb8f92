"""Run the API server with uvicorn."""

import uvicorn

from zpr.config.settings import settings


def main() -> None:
    uvicorn.run(
        "zpr.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development and settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
