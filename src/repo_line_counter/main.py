from __future__ import annotations
import logging
import uvicorn
from repo_line_counter.infrastructure.config import get_settings

logger = logging.getLogger("repo_line_counter")


def main() -> None:
    """Configure logging and serve the line-counter API with uvicorn."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    )
    logger.info(
        "Allowed hosts: %s | repo limit %d bytes | file limit %d bytes | fs concurrency %d",
        ", ".join(settings.allowed_hosts),
        settings.max_repo_size_bytes,
        settings.max_file_size_bytes,
        settings.fs_concurrency,
    )
    uvicorn.run(
        "repo_line_counter.interface.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
