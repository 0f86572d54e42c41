from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
from typing import Any, Dict, Optional
import json, logging, os, queue, threading, time, uuid
from datetime import datetime, timezone

import requests

from config import settings

logger = logging.getLogger(__name__)

VALID_LEVELS = ("debug", "info", "warn", "error", "fatal")
BACKEND_PACKAGES = ("cache", "controller", "cron_job", "db", "domain", "handler", "repository", "route", "service")
SHARED_PACKAGES = ("auth", "config", "middleware", "utils")

class JsonLineWriter:
    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    def write(self, record: Dict[str, Any]) -> None:
        record["_ts"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        line = json.dumps(record, separators=(",", ":"), ensure_ascii=False, default=str) + "\n"
        with self._lock, open(self.path, "a", encoding="utf-8") as f:
            f.write(line)

class RemoteLogSink:
    """Fire-and-forget POST of log entries to an external log API.

    Entries go through a bounded queue drained by one worker thread; when the
    queue is full new entries are dropped and counted.
    """
    def __init__(self, url: str, token: Optional[str] = None, timeout: float = 10.0, max_pending: int = 256):
        self.url = url
        self.timeout = timeout
        self.dropped = 0
        self._session = requests.Session()
        self._session.headers["Content-Type"] = "application/json"
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"
        self._queue: "queue.Queue[Optional[Dict[str, Any]]]" = queue.Queue(maxsize=max_pending)
        self._closed = False
        self._worker = threading.Thread(target=self._drain, name="log-sink", daemon=True)
        self._worker.start()
    @property
    def pending(self) -> int:
        return self._queue.qsize()
    def send(self, entry: Dict[str, Any]) -> None:
        if self._closed:
            self._drop(entry, "sink closed")
            return
        try:
            self._queue.put_nowait(dict(entry))
        except queue.Full:
            self._drop(entry, "queue full")
    def _drop(self, entry: Dict[str, Any], reason: str) -> None:
        self.dropped += 1
        logger.warning("log sink dropped %s entry (%s), %d dropped so far", entry.get("level"), reason, self.dropped)
    def _drain(self) -> None:
        while True:
            entry = self._queue.get()
            if entry is None:
                return
            self._post(entry)
    def _post(self, entry: Dict[str, Any]) -> None:
        try:
            resp = self._session.post(self.url, json=entry, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.warning("log sink rejected %s entry: %s", entry.get("level"), e)
    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put(None)
        self._worker.join()
        self._session.close()

class Audit:
    def __init__(self, writer: JsonLineWriter, remote: Optional[RemoteLogSink] = None, stack: str = "backend"):
        self.writer = writer
        self.remote = remote
        self.stack = stack
    def event(self, kind: str, **fields: Any) -> None:
        self.writer.write({"kind": kind, **fields})
    def log(self, level: str, package: str, message: str) -> Dict[str, str]:
        level, package = level.lower(), package.lower()
        if level not in VALID_LEVELS:
            raise ValueError(f"invalid level {level!r}, use one of: {', '.join(VALID_LEVELS)}")
        if package not in BACKEND_PACKAGES and package not in SHARED_PACKAGES:
            raise ValueError(f"invalid package {package!r}, use one of: {', '.join(BACKEND_PACKAGES + SHARED_PACKAGES)}")
        if not isinstance(message, str) or not message.strip():
            raise ValueError("message must be a non-empty string")
        entry = {"stack": self.stack, "level": level, "package": package, "message": message.strip()}
        self.writer.write({"kind": "log", **entry})
        if self.remote is not None:
            self.remote.send(entry)
        return entry
    def debug(self, package: str, message: str) -> Dict[str, str]:
        return self.log("debug", package, message)
    def info(self, package: str, message: str) -> Dict[str, str]:
        return self.log("info", package, message)
    def warn(self, package: str, message: str) -> Dict[str, str]:
        return self.log("warn", package, message)
    def error(self, package: str, message: str) -> Dict[str, str]:
        return self.log("error", package, message)
    def fatal(self, package: str, message: str) -> Dict[str, str]:
        return self.log("fatal", package, message)

def build_remote_sink() -> Optional[RemoteLogSink]:
    if not settings.LOG_API_URL:
        return None
    return RemoteLogSink(settings.LOG_API_URL, settings.LOG_API_TOKEN, settings.LOG_API_TIMEOUT, settings.LOG_API_MAX_PENDING)

# remote sink is attached per application lifespan, see app.lifespan
audit = Audit(JsonLineWriter(os.path.join(settings.LOG_DIR, settings.LOG_FILE)))

class StructuredAuditMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, sink: Optional[Audit] = None):
        super().__init__(app)
        self.sink = sink or audit
    async def dispatch(self, request, call_next):
        cid = str(uuid.uuid4())
        t0 = time.perf_counter()
        try:
            self.sink.event(
                "http_request",
                cid=cid,
                method=request.method,
                path=request.url.path,
                query=str(request.url.query),
                body_len=int(request.headers.get("content-length") or 0),
                client=getattr(request.client, "host", None),
            )
            response = await call_next(request)
            latency_ms = round((time.perf_counter() - t0) * 1000, 2)
            self.sink.event(
                "http_response",
                cid=cid,
                status=response.status_code,
                latency_ms=latency_ms,
            )
            return response
        except Exception as e:
            latency_ms = round((time.perf_counter() - t0) * 1000, 2)
            self.sink.event("http_exception", cid=cid, error=str(e), latency_ms=latency_ms)
            raise
