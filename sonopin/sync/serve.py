"""
Production serving for the sync server.

Requests are handled by gevent's WSGI server on a bounded greenlet pool.
SIGINT/SIGTERM stop the listener, then in-flight requests get a grace period
to finish before they are killed and the process exits with status 1.
"""

import logging
import signal
import sys

import gevent
from gevent.event import Event
from gevent.pool import Pool
from gevent.pywsgi import WSGIServer

from sonopin.shared.constants import DEFAULT_MAX_CONCURRENT_REQUESTS, DEFAULT_SHUTDOWN_GRACE_SECONDS
from .server import create_app

logger = logging.getLogger(__name__)


def drain(server: WSGIServer, pool: Pool, grace: float) -> bool:
    """
    Stop accepting connections and wait for in-flight handlers.

    Returns:
        True if every handler finished within `grace` seconds. Otherwise the
        remaining handlers are killed and False is returned.
    """
    server.close()
    pool.join(timeout=grace)
    if len(pool):
        logger.critical("%d requests still running after %.1fs grace period, killing them",
                        len(pool), grace)
        pool.kill()
        return False
    return True


def serve(data_dir: str, port: int, host: str = "0.0.0.0",
          grace: float = DEFAULT_SHUTDOWN_GRACE_SECONDS,
          max_concurrent: int = DEFAULT_MAX_CONCURRENT_REQUESTS) -> None:
    """
    Run the sync server until SIGINT/SIGTERM.

    Exits the process with status 1 if the port cannot be bound or the
    shutdown grace period runs out.
    """
    app = create_app(data_dir)
    pool = Pool(max_concurrent)
    server = WSGIServer((host, port), app, spawn=pool,
                        log=logging.getLogger("sonopin.access"), error_log=logger)

    try:
        server.start()
    except OSError as e:
        logger.critical("Could not listen on %s:%d: %s", host, port, e)
        sys.exit(1)

    logger.info("Sync server listening on %s:%d", host, server.server_port)

    stop = Event()
    gevent.signal_handler(signal.SIGINT, stop.set)
    gevent.signal_handler(signal.SIGTERM, stop.set)

    stop.wait()
    logger.info("Shutting down, waiting up to %.1fs for in-flight requests", grace)
    if not drain(server, pool, grace):
        sys.exit(1)
    logger.info("Server stopped")
