"""KML point and line accumulator."""

import re
import xml.etree.ElementTree as ET
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from teleweb_bot.domain.geo import GeoPoint
from teleweb_bot.domain.kml import ActiveLine, KmlData, LineTrack, NamedPoint
from teleweb_bot.errors import InvalidStateTransition

KML_NAMESPACE = "http://www.opengis.net/kml/2.2"
MIN_LINE_POINTS = 2


class PointSource(Enum):
    """Where a coordinate came from, used for fallback names."""

    LOCATION = "Pinned point"
    MANUAL = "Manual point"


@dataclass(frozen=True)
class PointAdded:
    """Outcome of adding a coordinate."""

    name: str
    point: GeoPoint
    on_line: bool
    line_point_count: int = 0


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class KmlAccumulator:
    """State machine over a user's ``KmlData``.

    The accumulator is either collecting standalone points, or collecting the
    points of a single active line. Every rejected transition raises
    ``InvalidStateTransition`` before anything is changed.
    """

    def __init__(
        self, data: KmlData, clock: Callable[[], datetime] = _utcnow
    ) -> None:
        self.data = data
        self.clock = clock

    def start_line(self, name: str | None = None) -> ActiveLine:
        active = self.data.active_line
        if active is not None:
            raise InvalidStateTransition(
                f'You already have an active line named "{active.name}" with '
                f"{len(active.points)} points. Use /endline or /cancelline first."
            )
        line_name = (name or "").strip() or f"Line {len(self.data.lines) + 1}"
        self.data.active_line = ActiveLine(name=line_name)
        return self.data.active_line

    def add_point(
        self,
        point: GeoPoint,
        *,
        source: PointSource,
        explicit_name: str | None = None,
        queued_name: str | None = None,
    ) -> PointAdded:
        """Append to the active line, or store a standalone named point."""
        active = self.data.active_line
        if active is not None:
            active.points.append(point)
            return PointAdded(
                name=active.name,
                point=point,
                on_line=True,
                line_point_count=len(active.points),
            )
        name = (
            _clean(explicit_name)
            or _clean(queued_name)
            or _clean(self.data.default_point_name)
            or f"{source.value} {len(self.data.placemarks) + 1}"
        )
        self.data.placemarks.append(
            NamedPoint(name=name, point=point, created_at=self.clock())
        )
        return PointAdded(name=name, point=point, on_line=False)

    def end_line(self) -> LineTrack:
        active = self.data.active_line
        if active is None:
            raise InvalidStateTransition(
                "There is no active line. Start one with /startline."
            )
        if len(active.points) < MIN_LINE_POINTS:
            raise InvalidStateTransition(
                f'Line "{active.name}" only has {len(active.points)} point(s). '
                f"A line needs at least {MIN_LINE_POINTS} points to be saved."
            )
        track = LineTrack(
            name=active.name, points=list(active.points), created_at=self.clock()
        )
        self.data.lines.append(track)
        self.data.active_line = None
        return track

    def cancel_line(self) -> ActiveLine:
        active = self.data.active_line
        if active is None:
            raise InvalidStateTransition("There is no active line to cancel.")
        self.data.active_line = None
        return active

    def set_default_name(self, name: str | None) -> str | None:
        self.data.default_point_name = _clean(name)
        return self.data.default_point_name

    def clear(self) -> None:
        self.data = KmlData()

    def is_empty(self) -> bool:
        active = self.data.active_line
        has_line_points = active is not None and bool(active.points)
        return not (self.data.placemarks or self.data.lines or has_line_points)


def render_kml(data: KmlData, doc_name: str) -> str:
    """Serialize collected points and lines to a KML 2.2 document."""
    root = ET.Element("kml", xmlns=KML_NAMESPACE)
    document = ET.SubElement(root, "Document")
    ET.SubElement(document, "name").text = doc_name
    ET.SubElement(document, "description").text = "Generated by TeleWeb Bot"

    for placemark in data.placemarks:
        element = ET.SubElement(document, "Placemark")
        ET.SubElement(element, "name").text = placemark.name
        point = ET.SubElement(element, "Point")
        ET.SubElement(point, "coordinates").text = _coordinates([placemark.point])

    lines = [(line.name, line.points) for line in data.lines]
    active = data.active_line
    if active is not None and len(active.points) >= MIN_LINE_POINTS:
        lines.append((f"{active.name} (active line)", active.points))
    for name, points in lines:
        element = ET.SubElement(document, "Placemark")
        ET.SubElement(element, "name").text = name
        line_string = ET.SubElement(element, "LineString")
        ET.SubElement(line_string, "tessellate").text = "1"
        ET.SubElement(line_string, "coordinates").text = _coordinates(points)

    ET.indent(root, space="  ")
    body = ET.tostring(root, encoding="unicode")
    return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}\n'


def kml_filename(doc_name: str, timestamp_ms: int) -> str:
    """Return a filesystem-safe file name for a KML document."""
    stem = re.sub(r"[^\w\s-]", "", doc_name).strip()
    stem = re.sub(r"\s+", "_", stem) or "teleweb_kml"
    return f"{stem}_{timestamp_ms}.kml"


def _coordinates(points: list[GeoPoint]) -> str:
    return " ".join(f"{p.longitude},{p.latitude},0" for p in points)


def _clean(name: str | None) -> str | None:
    if name is None:
        return None
    stripped = name.strip().strip('"').strip()
    return stripped or None
