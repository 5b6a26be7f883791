from __future__ import annotations

import logging

import uvicorn

from bim.api.app import create_app
from bim.application.container import build_container
from bim.config import get_app_paths, load_settings
from bim.logging_config import setup_logging


def main() -> None:
    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO)

    settings = load_settings()
    container = build_container(paths.db_path, settings=settings, uploads_dir=paths.uploads_dir)
    app = create_app(container)

    logging.getLogger("bim.api").info("api_starting host=%s port=%s", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
