"""Tiny HTTP server exposing the login QR code."""

import logging
from http.server import HTTPServer, BaseHTTPRequestHandler
from pathlib import Path
from threading import Thread
from typing import Optional
from urllib.parse import urlparse

logger = logging.getLogger("wachat.qr_server")

NOT_READY = "QR code not generated yet. Please wait or check bot logs."

_LANDING_PAGE = """<!DOCTYPE html>
<html>
<head><title>{name}</title></head>
<body style="font-family: sans-serif; text-align: center; padding-top: 40px;">
  <h1>{name} is running</h1>
  <p>Open <a href="/qr">/qr</a> to scan the WhatsApp login QR code.</p>
</body>
</html>
"""


class _QRRequestHandler(BaseHTTPRequestHandler):
    """Serves /qr as PNG and a landing page for everything else."""

    qr_path: Optional[Path] = None
    bot_name: str = "wachat"

    def do_GET(self):
        parsed = urlparse(self.path)
        if parsed.path == "/qr":
            path = self.qr_path
            if path is None or not path.is_file():
                body = NOT_READY.encode()
                self.send_response(404)
                self.send_header("Content-Type", "text/plain; charset=utf-8")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)
                return
            data = path.read_bytes()
            self.send_response(200)
            self.send_header("Content-Type", "image/png")
            self.send_header("Content-Length", str(len(data)))
            self.send_header("Cache-Control", "no-store")
            self.end_headers()
            self.wfile.write(data)
            return

        body = _LANDING_PAGE.format(name=self.bot_name).encode()
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} {format % args}")


def start_qr_server(qr_path: Path, host: str = "0.0.0.0", port: int = 3000, bot_name: str = "wachat") -> HTTPServer:
    """Start the server in a daemon thread and return it (call ``shutdown()`` to stop)."""
    handler = type("QRRequestHandler", (_QRRequestHandler,), {"qr_path": qr_path, "bot_name": bot_name})
    server = HTTPServer((host, port), handler)
    Thread(target=server.serve_forever, daemon=True).start()
    logger.info(f"QR server listening on http://{host}:{server.server_port}")
    return server
