import asyncio
import logging
import setproctitle
from typing import Optional
from hypercorn.config import Config
from hypercorn.asyncio import serve
from deploymint.local import app_globals
from deploymint.log.setup import setup_logging

log = logging.getLogger("api_server")


def build_hypercorn_config(host: Optional[str] = None, port: Optional[int] = None) -> Config:
    """Returns the Hypercorn configuration for the API server."""
    config = Config()
    config.bind = [f"{host or app_globals.API_HOST}:{port or app_globals.API_PORT}"]
    config.accesslog = logging.getLogger("api_server.access")
    config.errorlog = logging.getLogger("api_server.error")
    return config


def run_api_server(host: Optional[str] = None, port: Optional[int] = None, console_level: int = logging.INFO) -> None:
    """
    Serves the API and dashboard in the foreground until interrupted.

    :param host: Bind host, defaults to API_HOST.
    :param port: Bind port, defaults to API_PORT.
    :param console_level: Console logging level.
    """
    setproctitle.setproctitle(app_globals.API_PROCESS_TITLE)
    setup_logging(console_level)

    from deploymint.web.setup import app

    config = build_hypercorn_config(host, port)
    log.info(f"Deploymint API running on http://{config.bind[0]}")
    log.info(f"Config file: {app_globals.SERVERS_FILE_PATH}")
    try:
        asyncio.run(serve(app, config))
    except KeyboardInterrupt:
        log.info("API server interrupted by user.")
    log.info("API server stopped.")
