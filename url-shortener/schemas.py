from pydantic import BaseModel, Field, StrictInt
from typing import Optional, List

from models import ClickEvent, Stats
from utils import iso_z

class CreateShortURLReq(BaseModel):
    url: str = Field(..., description="Original long URL")
    validity: Optional[StrictInt] = Field(None, description="Minutes (default 30)")
    shortcode: Optional[str] = Field(None, description="Custom shortcode, 3-10 alphanumeric characters")

class CreateShortURLResp(BaseModel):
    shortLink: str
    expiry: str

class ClickItem(BaseModel):
    timestamp: str
    referrer: str
    location: str
    userAgent: str

    @classmethod
    def from_event(cls, click: ClickEvent) -> "ClickItem":
        return cls(
            timestamp=iso_z(click.timestamp),
            referrer=click.referrer,
            location=click.location,
            userAgent=click.user_agent,
        )

class StatsResp(BaseModel):
    shortcode: str
    originalUrl: str
    createdAt: str
    expiry: str
    totalClicks: int
    isActive: bool
    clickDetails: List[ClickItem]

    @classmethod
    def from_stats(cls, stats: Stats) -> "StatsResp":
        return cls(
            shortcode=stats.shortcode,
            originalUrl=stats.original_url,
            createdAt=iso_z(stats.created_at),
            expiry=iso_z(stats.expires_at),
            totalClicks=stats.total_clicks,
            isActive=stats.is_active,
            clickDetails=[ClickItem.from_event(c) for c in stats.clicks],
        )
