import ipaddress
from typing import Optional

import geoip2.database
import geoip2.errors


class GeoLocator:
    """Best-effort "City, Country" lookup for a client address.

    Loopback and private addresses map to "local"; anything that can't be
    resolved maps to "unknown".
    """

    def __init__(self, db_path: Optional[str] = None):
        self._reader = geoip2.database.Reader(db_path) if db_path else None

    def locate(self, ip: Optional[str]) -> str:
        if not ip or ip == "unknown":
            return "unknown"
        try:
            addr = ipaddress.ip_address(ip)
        except ValueError:
            return "unknown"
        if addr.is_loopback or addr.is_private or addr.is_link_local:
            return "local"
        if self._reader is None:
            return "unknown"
        try:
            resp = self._reader.city(str(addr))
        except (geoip2.errors.GeoIP2Error, ValueError):
            return "unknown"
        return f"{resp.city.name or 'Unknown'}, {resp.country.name or 'Unknown'}"

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None
