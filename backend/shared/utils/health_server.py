"""
GET /health for the reconciler container, served from a daemon thread on PORT.
The body includes the status callback's output (per-job run counts and last
tick summaries). Nothing is started when PORT is unset.
"""
from __future__ import annotations

import json
import os
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Optional

StatusFn = Callable[[], dict[str, Any]]


def health_payload(service_name: str, status_fn: Optional[StatusFn] = None) -> bytes:
    body: dict[str, Any] = {"status": "ok", "service": service_name}
    if status_fn is not None:
        try:
            body.update(status_fn())
        except Exception as exc:
            body = {"status": "degraded", "service": service_name, "error": str(exc)}
    return json.dumps(body, default=str).encode("utf-8")


def _handler_for(service_name: str, status_fn: Optional[StatusFn]) -> type[BaseHTTPRequestHandler]:
    class HealthHandler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:
            if self.path.rstrip("/") != "/health":
                self.send_response(404)
                self.end_headers()
                return
            body = health_payload(service_name, status_fn)
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format: str, *args: object) -> None:
            pass

    return HealthHandler


def start_health_server(service_name: str, status_fn: Optional[StatusFn] = None) -> Optional[threading.Thread]:
    port = os.environ.get("PORT", "")
    if not port.isdigit():
        return None
    server = HTTPServer(("0.0.0.0", int(port)), _handler_for(service_name, status_fn))
    thread = threading.Thread(target=server.serve_forever, name=f"{service_name}-health", daemon=True)
    thread.start()
    return thread
