"""Geographic value types."""

from pydantic import BaseModel, Field


class GeoPoint(BaseModel):
    """A WGS84 coordinate."""

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
