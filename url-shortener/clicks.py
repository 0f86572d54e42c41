import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional

from models import ClickEvent
from utils import utc_now


class ClickRecorder:
    """Append-only click logs keyed by shortcode.

    The recorder does not know about expiry; callers resolve the shortcode
    through the registry before recording a click.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._lock = threading.Lock()
        self._logs: Dict[str, List[ClickEvent]] = {}

    def open(self, shortcode: str) -> None:
        with self._lock:
            self._logs.setdefault(shortcode, [])

    def record(
        self,
        shortcode: str,
        referrer: Optional[str] = None,
        user_agent: Optional[str] = None,
        ip: Optional[str] = None,
        location: Optional[str] = None,
    ) -> ClickEvent:
        with self._lock:
            # timestamp taken under the lock so log order matches time order
            click = ClickEvent(
                timestamp=self._clock(),
                referrer=referrer or "direct",
                user_agent=user_agent or "unknown",
                ip=ip or "unknown",
                location=location or "unknown",
            )
            self._logs.setdefault(shortcode, []).append(click)
        return click

    def clicks_for(self, shortcode: str) -> List[ClickEvent]:
        with self._lock:
            return list(self._logs.get(shortcode, ()))

    def count(self, shortcode: str) -> int:
        with self._lock:
            return len(self._logs.get(shortcode, ()))
