"""Tests for KML collection and export."""

import xml.etree.ElementTree as ET
from datetime import UTC, datetime

import pytest

from teleweb_bot.domain.geo import GeoPoint
from teleweb_bot.domain.kml import KmlData
from teleweb_bot.errors import InvalidStateTransition
from teleweb_bot.services.kml import (
    KML_NAMESPACE,
    KmlAccumulator,
    PointSource,
    kml_filename,
    render_kml,
)

NS = {"kml": KML_NAMESPACE}


def _accumulator() -> KmlAccumulator:
    return KmlAccumulator(
        KmlData(), clock=lambda: datetime(2024, 3, 1, 12, 0, tzinfo=UTC)
    )


def _point(lat: float, lon: float) -> GeoPoint:
    return GeoPoint(latitude=lat, longitude=lon)


def test_queued_name_beats_default_and_ordinal() -> None:
    accumulator = _accumulator()
    accumulator.set_default_name("Pole")

    first = accumulator.add_point(
        _point(-6.2, 106.8), source=PointSource.LOCATION, queued_name="Home"
    )
    second = accumulator.add_point(_point(-6.3, 106.9), source=PointSource.LOCATION)

    assert first.name == "Home"
    assert second.name == "Pole"


def test_fallback_name_uses_source_and_ordinal() -> None:
    accumulator = _accumulator()

    accumulator.add_point(_point(1, 1), source=PointSource.LOCATION)
    result = accumulator.add_point(_point(2, 2), source=PointSource.MANUAL)

    assert result.name == "Manual point 2"


def test_points_go_to_active_line() -> None:
    accumulator = _accumulator()
    accumulator.start_line("Fence")

    result = accumulator.add_point(
        _point(1, 1), source=PointSource.LOCATION, queued_name="ignored"
    )

    assert result.on_line
    assert result.line_point_count == 1
    assert accumulator.data.placemarks == []


def test_start_line_rejected_while_line_active() -> None:
    accumulator = _accumulator()
    accumulator.start_line("Fence")
    accumulator.add_point(_point(1, 1), source=PointSource.LOCATION)

    with pytest.raises(InvalidStateTransition) as exc_info:
        accumulator.start_line("Road")

    assert "Fence" in exc_info.value.message
    assert accumulator.data.active_line is not None
    assert accumulator.data.active_line.name == "Fence"


def test_end_line_requires_two_points() -> None:
    accumulator = _accumulator()
    accumulator.start_line()
    accumulator.add_point(_point(1, 1), source=PointSource.LOCATION)

    with pytest.raises(InvalidStateTransition):
        accumulator.end_line()
    assert accumulator.data.active_line is not None

    accumulator.add_point(_point(2, 2), source=PointSource.LOCATION)
    track = accumulator.end_line()

    assert track.name == "Line 1"
    assert len(track.points) == 2
    assert accumulator.data.active_line is None
    assert accumulator.data.lines == [track]


def test_end_and_cancel_without_line_are_rejected() -> None:
    accumulator = _accumulator()

    with pytest.raises(InvalidStateTransition):
        accumulator.end_line()
    with pytest.raises(InvalidStateTransition):
        accumulator.cancel_line()


def test_is_empty_ignores_line_without_points() -> None:
    accumulator = _accumulator()
    accumulator.start_line("Empty")

    assert accumulator.is_empty()


def test_render_kml_includes_points_lines_and_active_line() -> None:
    accumulator = _accumulator()
    accumulator.add_point(
        _point(-6.2, 106.8), source=PointSource.LOCATION, explicit_name="Home"
    )
    accumulator.start_line("Fence")
    accumulator.add_point(_point(1, 2), source=PointSource.LOCATION)
    accumulator.add_point(_point(3, 4), source=PointSource.LOCATION)
    accumulator.end_line()
    accumulator.start_line("Road")
    accumulator.add_point(_point(5, 6), source=PointSource.LOCATION)
    accumulator.add_point(_point(7, 8), source=PointSource.LOCATION)

    root = ET.fromstring(render_kml(accumulator.data, "Survey"))

    names = [el.text for el in root.findall(".//kml:Placemark/kml:name", NS)]
    assert names == ["Home", "Fence", "Road (active line)"]
    point = root.find(".//kml:Point/kml:coordinates", NS)
    assert point is not None
    assert point.text == "106.8,-6.2,0"
    line = root.findall(".//kml:LineString/kml:coordinates", NS)[0]
    assert line.text == "2.0,1.0,0 4.0,3.0,0"
    assert root.find("kml:Document/kml:name", NS).text == "Survey"


def test_kml_filename_is_filesystem_safe() -> None:
    assert kml_filename("My Survey: day/1", 1700) == "My_Survey_day1_1700.kml"
    assert kml_filename("???", 5) == "teleweb_kml_5.kml"
