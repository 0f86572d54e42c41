import threading
from datetime import datetime
from typing import Callable, Dict, Optional

from clicks import ClickRecorder
from config import Settings, settings as default_settings
from errors import DuplicateShortcode, ExhaustedCodespace, NotFound
from models import Stats, UrlRecord
from utils import base62, mins_after, utc_now


class UrlRegistry:
    """Shortcode -> UrlRecord map.

    Entries are never removed: an expired shortcode stays reserved and keeps
    serving statistics, it only stops resolving for redirects.
    """

    def __init__(
        self,
        recorder: ClickRecorder,
        clock: Callable[[], datetime] = utc_now,
        code_length: int = 6,
        max_attempts: int = 100,
        generator: Callable[[int], str] = base62,
    ):
        self._recorder = recorder
        self._clock = clock
        self._code_length = code_length
        self._max_attempts = max_attempts
        self._generator = generator
        self._lock = threading.Lock()
        self._urls: Dict[str, UrlRecord] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)

    def __contains__(self, shortcode: str) -> bool:
        with self._lock:
            return shortcode in self._urls

    def create(
        self,
        original_url: str,
        custom_shortcode: Optional[str] = None,
        validity_minutes: int = 30,
    ) -> UrlRecord:
        with self._lock:
            if custom_shortcode:
                if custom_shortcode in self._urls:
                    raise DuplicateShortcode(custom_shortcode)
                code = custom_shortcode
            else:
                code = self._free_code()

            now = self._clock()
            record = UrlRecord(
                original_url=original_url,
                shortcode=code,
                created_at=now,
                expires_at=mins_after(now, validity_minutes),
                validity_minutes=validity_minutes,
            )
            self._urls[code] = record
            self._recorder.open(code)
        return record

    def _free_code(self) -> str:
        # caller holds self._lock
        for _ in range(self._max_attempts):
            code = self._generator(self._code_length)
            if code not in self._urls:
                return code
        raise ExhaustedCodespace(self._max_attempts)

    def resolve(self, shortcode: str) -> UrlRecord:
        with self._lock:
            record = self._urls.get(shortcode)
            if record is None:
                raise NotFound(shortcode)
            if not record.is_live(self._clock()):
                if record.is_active:
                    self._urls[shortcode] = record.model_copy(update={"is_active": False})
                raise NotFound(shortcode)
            return record

    def stats_snapshot(self, shortcode: str) -> Stats:
        with self._lock:
            record = self._urls.get(shortcode)
            if record is None:
                raise NotFound(shortcode)
            clicks = self._recorder.clicks_for(shortcode)
            return Stats(
                shortcode=record.shortcode,
                original_url=record.original_url,
                created_at=record.created_at,
                expires_at=record.expires_at,
                total_clicks=len(clicks),
                is_active=record.is_live(self._clock()),
                clicks=clicks,
            )


class UrlStore:
    """Owns the registry and its click recorder for the process lifetime."""

    def __init__(self, registry: UrlRegistry, recorder: ClickRecorder):
        self.registry = registry
        self.clicks = recorder


def create_store(
    settings: Settings = default_settings,
    clock: Callable[[], datetime] = utc_now,
) -> UrlStore:
    recorder = ClickRecorder(clock=clock)
    registry = UrlRegistry(
        recorder,
        clock=clock,
        code_length=settings.SHORTCODE_LENGTH,
        max_attempts=settings.MAX_GENERATION_ATTEMPTS,
    )
    return UrlStore(registry, recorder)
