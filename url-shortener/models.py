from datetime import datetime
from typing import List
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class UrlRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    original_url: str
    shortcode: str
    created_at: datetime
    expires_at: datetime
    validity_minutes: int = 30
    # display only; liveness decisions go through is_live().
    # The registry swaps in a copy when it flips this flag.
    is_active: bool = True

    def is_live(self, now: datetime) -> bool:
        return now <= self.expires_at


class ClickEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    referrer: str = "direct"
    user_agent: str = "unknown"
    ip: str = "unknown"
    location: str = "unknown"


class Stats(BaseModel):
    shortcode: str
    original_url: str
    created_at: datetime
    expires_at: datetime
    total_clicks: int
    is_active: bool
    clicks: List[ClickEvent]
