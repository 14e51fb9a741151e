"""Development server with live reload.

Serves a build output directory with Flask. HTML responses get a small client
injected that listens on ``/__livereload`` (server-sent events) and either
swaps stylesheets in place or reloads the page.
"""

from __future__ import annotations

import json
import queue
import threading
from pathlib import Path
from typing import List, Optional

from flask import Flask, Response, abort, redirect, send_file
from werkzeug.security import safe_join
from werkzeug.serving import make_server

from .config import RELOAD_KINDS
from .logging import get_logger


logger = get_logger("assetpipe.server")

LIVERELOAD_PATH = "/__livereload"

CLIENT_SCRIPT = (
    "<script>(function(){"
    "var es=new EventSource('" + LIVERELOAD_PATH + "');"
    "es.onmessage=function(e){var m=JSON.parse(e.data);"
    "if(m.kind==='css'){"
    "document.querySelectorAll('link[rel=\"stylesheet\"]').forEach(function(l){"
    "var u=new URL(l.href);u.searchParams.set('_lr',Date.now());l.href=u.toString();});"
    "}else{location.reload();}};"
    "})();</script>"
)


def inject_client(html: str) -> str:
    idx = html.lower().rfind("</body>")
    if idx == -1:
        return html + CLIENT_SCRIPT
    return html[:idx] + CLIENT_SCRIPT + html[idx:]


class ReloadHub:
    """Fan-out of reload events to every connected browser."""

    def __init__(self):
        self._clients: List[queue.Queue] = []
        self._lock = threading.Lock()

    def subscribe(self) -> queue.Queue:
        q: queue.Queue = queue.Queue()
        with self._lock:
            self._clients.append(q)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            if q in self._clients:
                self._clients.remove(q)

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def notify(self, kind: str, path: str = "") -> None:
        if kind not in RELOAD_KINDS:
            raise ValueError(f"Unknown reload kind: {kind}")
        msg = json.dumps({"kind": kind, "path": path})
        with self._lock:
            clients = list(self._clients)
        for q in clients:
            q.put(msg)
        logger.info("Reload (%s) sent to %d client(s)%s", kind, len(clients), f": {path}" if path else "")

    def close(self) -> None:
        with self._lock:
            clients = list(self._clients)
        for q in clients:
            q.put(None)


def create_app(root: Path, hub: ReloadHub, keepalive: float = 15.0) -> Flask:
    root = Path(root)
    app = Flask(__name__, static_folder=None)

    @app.route(LIVERELOAD_PATH)
    def livereload():
        q = hub.subscribe()

        def stream():
            try:
                yield ": connected\n\n"
                while True:
                    try:
                        msg = q.get(timeout=keepalive)
                    except queue.Empty:
                        yield ": ping\n\n"
                        continue
                    if msg is None:
                        break
                    yield f"data: {msg}\n\n"
            finally:
                hub.unsubscribe(q)

        return Response(
            stream(),
            mimetype="text/event-stream",
            headers={"Cache-Control": "no-cache"},
        )

    @app.route("/", defaults={"path": ""})
    @app.route("/<path:path>")
    def serve(path: str):
        joined = safe_join(str(root), path)
        if joined is None:
            abort(404)
        target = Path(joined)
        if target.is_dir():
            if path and not path.endswith("/"):
                return redirect(f"/{path}/")
            target = target / "index.html"
        if not target.is_file():
            abort(404)
        if target.suffix in (".html", ".htm"):
            html = target.read_text(encoding="utf-8")
            return Response(inject_client(html), mimetype="text/html")
        return send_file(target, max_age=0)

    return app


class DevServer:
    def __init__(self, root: Path, host: str = "127.0.0.1", port: int = 3000, hub: Optional[ReloadHub] = None):
        self.root = Path(root)
        self.host = host
        self.port = port
        self.hub = hub or ReloadHub()
        self._server = None
        self._thread: Optional[threading.Thread] = None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def start(self) -> None:
        app = create_app(self.root, self.hub)
        self._server = make_server(self.host, self.port, app, threaded=True)
        # port 0 asks the OS for a free port
        self.port = self._server.server_port
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="devserver", daemon=True
        )
        self._thread.start()
        logger.info("Serving %s at %s", self.root, self.url)

    def stop(self) -> None:
        if self._server is None:
            return
        self.hub.close()
        self._server.shutdown()
        self._server.server_close()
        self._server = None
        logger.info("Dev server stopped")
