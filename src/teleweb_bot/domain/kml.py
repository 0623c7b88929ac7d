"""Models for the KML accumulator."""

from datetime import datetime

from pydantic import BaseModel, Field

from teleweb_bot.domain.geo import GeoPoint


class NamedPoint(BaseModel):
    """A standalone placemark."""

    name: str
    point: GeoPoint
    created_at: datetime


class LineTrack(BaseModel):
    """A finished line."""

    name: str
    points: list[GeoPoint]
    created_at: datetime


class ActiveLine(BaseModel):
    """A line that is still collecting points."""

    name: str
    points: list[GeoPoint] = Field(default_factory=list)


class KmlData(BaseModel):
    """Everything a user has collected for a KML document."""

    placemarks: list[NamedPoint] = Field(default_factory=list)
    lines: list[LineTrack] = Field(default_factory=list)
    active_line: ActiveLine | None = None
    default_point_name: str | None = None
