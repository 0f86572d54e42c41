import re, random
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from urllib.parse import urlparse

ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"

_rng = random.SystemRandom()

def base62(n: int = 6) -> str:
    return "".join(_rng.choice(ALPHABET) for _ in range(n))

_shortcode_re = re.compile(r"^[A-Za-z0-9]{3,10}$")
def valid_shortcode(s: Optional[str]) -> bool:
    return isinstance(s, str) and bool(_shortcode_re.match(s))

def valid_url(u: Optional[str], max_length: int = 2048) -> bool:
    if not isinstance(u, str) or not u or len(u) > max_length:
        return False
    try:
        p = urlparse(u)
        return p.scheme in ("http", "https") and bool(p.hostname)
    except ValueError:
        return False

def check_validity(minutes, default: int = 30, maximum: int = 525600) -> Tuple[bool, Optional[int]]:
    """Returns (ok, minutes); absent validity falls back to the default."""
    if minutes is None:
        return True, default
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        return False, None
    if minutes <= 0 or minutes > maximum:
        return False, None
    return True, minutes

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def mins_after(start: datetime, m: int) -> datetime:
    return start + timedelta(minutes=m)

def iso_z(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00","Z")
