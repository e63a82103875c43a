"""Entry point: ``python -m mcp_browser_sessions`` or the ``mcp-browser-sessions`` script."""

import logging

from .browser.manager import BrowserManager
from .config import get_server_config
from .logging_setup import setup_logging
from .server import create_server

logger = logging.getLogger(__name__)


def main() -> None:
    config = get_server_config()
    setup_logging(config.log_level, config.log_dir)

    manager = BrowserManager(config)
    mcp = create_server(manager, config)

    logger.info(f"Serving over stdio (default browser: {config.default_browser}, headless={config.headless})")
    mcp.run()


if __name__ == "__main__":
    main()
