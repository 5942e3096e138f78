"""
Simple HTTP server to preview the generated blog.
Run this after generating to avoid file:// loading issues in the browser.
"""

from __future__ import annotations

import functools
import http.server
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def make_server(site_dir: Path, host: str = "127.0.0.1", port: int = 8000) -> http.server.ThreadingHTTPServer:
    handler = functools.partial(http.server.SimpleHTTPRequestHandler, directory=str(site_dir))
    return http.server.ThreadingHTTPServer((host, port), handler)


def serve_site(site_dir: Path, host: str = "127.0.0.1", port: int = 8000) -> int:
    site_path = Path(site_dir)
    if not site_path.is_dir():
        logger.error("Site directory '%s' doesn't exist. Run 'generate' first.", site_path)
        return 1

    httpd = make_server(site_path, host, port)
    logger.info("Serving %s at http://%s:%d/ (Ctrl+C to stop)", site_path, host, httpd.server_address[1])
    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        logger.info("Server stopped.")
    finally:
        httpd.server_close()
    return 0
