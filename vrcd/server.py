"""HTTPS request listener.

Each POST path maps to one control-plane operation through RequestRouter.
Connections are handled one thread each; the TLS handshake runs on the
worker thread so a slow client cannot stall the accept loop.
"""

from __future__ import annotations

import logging
import ssl
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from . import __version__
from .codec import CONTENT_JSON
from .router import RequestRouter
from .service import ControlPlaneService

MAX_BODY_BYTES = 64 * 1024

log = logging.getLogger("vrcd.server")


class ControlPlaneRequestHandler(BaseHTTPRequestHandler):
    server_version = f"vrcd/{__version__}"
    protocol_version = "HTTP/1.1"
    server: ControlPlaneHTTPServer

    def do_POST(self) -> None:
        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            length = -1
        if length < 0 or length > MAX_BODY_BYTES:
            self._reply_json(413 if length > 0 else 400, b'{"error": "invalid_input", "message": "bad content length"}')
            return

        payload = self.rfile.read(length) if length else b""
        path = self.path.split("?", 1)[0]
        try:
            status, content_type, body = self.server.router.handle_payload(
                path, payload, self.headers.get("Content-Type")
            )
        except Exception:
            log.exception("Unhandled error path=%s", path)
            self._reply_json(500, b'{"error": "internal", "message": "internal error"}')
            return
        self._reply(status, content_type, body)

    def do_GET(self) -> None:
        self._reply_json(405, b'{"error": "method_not_allowed", "message": "POST required"}')

    do_PUT = do_GET
    do_DELETE = do_GET

    def _reply_json(self, status: int, body: bytes) -> None:
        self._reply(status, CONTENT_JSON, body)

    def _reply(self, status: int, content_type: str, body: bytes) -> None:
        self.close_connection = True
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Connection", "close")
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args) -> None:
        log.debug("%s %s", self.address_string(), format % args)


class ControlPlaneHTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(
        self,
        server_address: tuple[str, int],
        router: RequestRouter,
        ssl_context: ssl.SSLContext | None,
    ) -> None:
        self.router = router
        self.ssl_context = ssl_context
        super().__init__(server_address, ControlPlaneRequestHandler)

    def finish_request(self, request, client_address) -> None:
        if self.ssl_context is None:
            super().finish_request(request, client_address)
            return

        try:
            conn = self.ssl_context.wrap_socket(request, server_side=True)
        except (ssl.SSLError, OSError) as e:
            log.debug("TLS handshake failed peer=%s: %s", client_address, e)
            return
        try:
            self.RequestHandlerClass(conn, client_address, self)
        finally:
            conn.close()


class ControlPlaneServer:
    """Owns the listener socket and its serving thread."""

    def __init__(
        self,
        service: ControlPlaneService,
        *,
        host: str,
        port: int,
        ssl_context: ssl.SSLContext | None,
    ) -> None:
        self.service = service
        self.router = RequestRouter(service)
        self.httpd = ControlPlaneHTTPServer((host, port), self.router, ssl_context)
        self._thread: threading.Thread | None = None

    @property
    def address(self) -> tuple[str, int]:
        host, port = self.httpd.server_address[:2]
        return str(host), int(port)

    @property
    def url(self) -> str:
        host, port = self.address
        scheme = "https" if self.httpd.ssl_context is not None else "http"
        return f"{scheme}://{host}:{port}"

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self.httpd.serve_forever,
            name="vrcd-listener",
            daemon=True,
        )
        self._thread.start()
        log.info("Listening on %s", self.url)

    def stop(self) -> None:
        if self._thread is not None:
            self.httpd.shutdown()
            self._thread.join(timeout=5.0)
            self._thread = None
        self.httpd.server_close()
        log.info("Listener stopped")
