"""
Unit tests for display-to-logical coordinate mapping and geometry helpers.
"""

import math

import pytest

from pagescan.coordinates import CoordinateMapper, DisplayRect
from pagescan.geometry import Corner, Point, Quadrilateral, Rectangle


# ============================================================================
# CoordinateMapper Tests
# ============================================================================

def test_mapper_scales_display_to_logical():
    """A 4000x3000 image shown at 800x600 maps by a factor of 5."""
    mapper = CoordinateMapper(DisplayRect(0, 0, 800, 600), 4000, 3000)
    assert mapper.scale == (5.0, 5.0)

    point = mapper.to_logical(400, 300)
    assert point == Point(2000.0, 1500.0)


def test_mapper_subtracts_display_offset():
    """Screen positions are relative to the display's top-left corner."""
    mapper = CoordinateMapper(DisplayRect(100, 50, 800, 600), 1600, 1200)
    assert mapper.to_logical(100, 50) == Point(0.0, 0.0)
    assert mapper.to_logical(500, 350) == Point(800.0, 600.0)


def test_mapper_non_uniform_scale():
    mapper = CoordinateMapper(DisplayRect(0, 0, 400, 100), 800, 500)
    assert mapper.scale_x == 2.0
    assert mapper.scale_y == 5.0
    assert mapper.to_logical(10, 10) == Point(20.0, 50.0)


def test_mapper_positions_outside_display_are_not_clamped():
    mapper = CoordinateMapper(DisplayRect(10, 10, 100, 100), 200, 200)
    point = mapper.to_logical(0, 500)
    assert point == Point(-20.0, 980.0)


def test_mapper_zero_size_display_gives_infinite_scale():
    """No exception for an empty display; callers check is_empty."""
    display = DisplayRect(0, 0, 0, 0)
    mapper = CoordinateMapper(display, 800, 600)

    assert display.is_empty
    assert math.isinf(mapper.scale_x)
    assert math.isinf(mapper.scale_y)


def test_display_rect_is_empty():
    assert not DisplayRect(0, 0, 1, 1).is_empty
    assert DisplayRect(0, 0, 0, 10).is_empty
    assert DisplayRect(0, 0, 10, -1).is_empty


# ============================================================================
# Geometry Tests
# ============================================================================

def test_point_clamped():
    assert Point(-5, 20).clamped(100, 10) == Point(0.0, 10.0)
    assert Point(50, 5).clamped(100, 10) == Point(50, 5)


def test_point_distance():
    assert Point(0, 0).distance_to(Point(3, 4)) == pytest.approx(5.0)


def test_quadrilateral_from_image_size():
    quad = Quadrilateral.from_image_size(640, 480)
    assert quad.points() == (
        Point(0, 0), Point(640, 0), Point(640, 480), Point(0, 480)
    )


def test_quadrilateral_with_corner_replaces_only_one():
    quad = Quadrilateral.from_image_size(640, 480)
    moved = quad.with_corner(Corner.BOTTOM_RIGHT, Point(600, 450))

    assert moved.bottom_right == Point(600, 450)
    assert moved.top_left == quad.top_left
    assert moved.top_right == quad.top_right
    assert moved.bottom_left == quad.bottom_left
    assert quad.bottom_right == Point(640, 480)


def test_quadrilateral_bounding_box_and_sides():
    quad = Quadrilateral(Point(10, 20), Point(110, 10), Point(120, 210), Point(0, 200))
    assert quad.bounding_box() == (0, 10, 120, 210)

    top, right, bottom, left = quad.side_lengths()
    assert top == pytest.approx(math.hypot(100, 10))
    assert right == pytest.approx(math.hypot(10, 200))
    assert bottom == pytest.approx(120.0)
    assert left == pytest.approx(math.hypot(10, 180))


def test_quadrilateral_clamped():
    quad = Quadrilateral(Point(-50, -50), Point(1000, 10), Point(1000, 1000), Point(20, 1000))
    assert quad.clamped(400, 300) == Quadrilateral(
        Point(0, 0), Point(400, 10), Point(400, 300), Point(20, 300)
    )


def test_quadrilateral_is_finite():
    assert Quadrilateral.from_image_size(640, 480).is_finite
    assert not Quadrilateral(Point(0, 0), Point(math.inf, 0),
                             Point(10, 10), Point(0, 10)).is_finite
    assert not Point(math.nan, 1).is_finite


def test_rectangle_centered_default_margin():
    """Default crop covers the central 80% of the image."""
    rect = Rectangle.centered(1000, 500)
    assert rect.x == pytest.approx(100)
    assert rect.y == pytest.approx(50)
    assert rect.width == pytest.approx(800)
    assert rect.height == pytest.approx(400)


def test_rectangle_contains_edges():
    rect = Rectangle(10, 10, 20, 20)
    assert rect.contains(10, 10)
    assert rect.contains(30, 30)
    assert not rect.contains(31, 15)
