import pytest

from geotoken.sim.grid import (
    CellRect,
    GeoBounds,
    GridCoord,
    LatLng,
    cell_bounds,
    cell_center,
    chebyshev_distance,
    covering_rect,
    iter_neighborhood,
    to_cell,
)

ORIGIN = LatLng(36.997936938057016, -122.05703507501151)
TILE = 0.0001


def test_to_cell_floors_relative_to_origin() -> None:
    assert to_cell(ORIGIN.lat, ORIGIN.lng, origin=ORIGIN, tile_size=TILE) == GridCoord(0, 0)

    north_east = cell_center(GridCoord(3, 7), origin=ORIGIN, tile_size=TILE)
    assert to_cell(north_east.lat, north_east.lng, origin=ORIGIN, tile_size=TILE) == GridCoord(3, 7)


def test_to_cell_floors_negative_offsets_downward() -> None:
    point = cell_center(GridCoord(-1, -4), origin=ORIGIN, tile_size=TILE)

    assert to_cell(point.lat, point.lng, origin=ORIGIN, tile_size=TILE) == GridCoord(-1, -4)


def test_cell_bounds_contain_cell_center_and_span_one_tile() -> None:
    coord = GridCoord(2, -5)
    bounds = cell_bounds(coord, origin=ORIGIN, tile_size=TILE)

    assert bounds.contains(cell_center(coord, origin=ORIGIN, tile_size=TILE))
    assert bounds.north_east.lat - bounds.south_west.lat == pytest.approx(TILE)
    assert bounds.north_east.lng - bounds.south_west.lng == pytest.approx(TILE)
    assert bounds.south_west.lat == pytest.approx(ORIGIN.lat + 2 * TILE)
    assert bounds.south_west.lng == pytest.approx(ORIGIN.lng - 5 * TILE)


def test_chebyshev_distance_is_max_of_axis_deltas() -> None:
    assert chebyshev_distance(GridCoord(0, 0), GridCoord(0, 0)) == 0
    assert chebyshev_distance(GridCoord(0, 0), GridCoord(3, -1)) == 3
    assert chebyshev_distance(GridCoord(-2, 5), GridCoord(1, 1)) == 4
    assert chebyshev_distance(GridCoord(4, 4), GridCoord(1, 1)) == chebyshev_distance(GridCoord(1, 1), GridCoord(4, 4))


def test_neighborhood_is_a_square_of_side_two_radius_plus_one() -> None:
    center = GridCoord(10, -3)
    coords = list(iter_neighborhood(center, 2))

    assert len(coords) == 25
    assert len(set(coords)) == 25
    assert all(chebyshev_distance(coord, center) <= 2 for coord in coords)
    assert GridCoord(12, -1) in coords


def test_neighborhood_rejects_negative_radius() -> None:
    with pytest.raises(ValueError, match="radius"):
        list(iter_neighborhood(GridCoord(0, 0), -1))


def test_cell_key_round_trip_and_rejects_garbage() -> None:
    coord = GridCoord(-12, 40)

    assert coord.to_key() == "-12,40"
    assert GridCoord.from_key("-12,40") == coord

    for bad in ("", "1", "1,2,3", "a,b", "1.5,2", "01,2", " 1,2", "1_0,2", "-0,1", "+1,2"):
        with pytest.raises(ValueError, match="invalid cell key"):
            GridCoord.from_key(bad)


def test_covering_rect_spans_view_plus_padding() -> None:
    south_west = cell_center(GridCoord(0, 0), origin=ORIGIN, tile_size=TILE)
    north_east = cell_center(GridCoord(2, 3), origin=ORIGIN, tile_size=TILE)
    bounds = GeoBounds(south_west=south_west, north_east=north_east)

    rect = covering_rect(bounds, origin=ORIGIN, tile_size=TILE, padding=1)

    assert rect == CellRect(min_i=-1, max_i=3, min_j=-1, max_j=4)
    assert len(rect) == 5 * 6
    assert rect.contains(GridCoord(3, 4))
    assert not rect.contains(GridCoord(4, 0))


def test_geo_bounds_intersection_is_inclusive() -> None:
    a = GeoBounds(LatLng(0.0, 0.0), LatLng(1.0, 1.0))
    touching = GeoBounds(LatLng(1.0, 1.0), LatLng(2.0, 2.0))
    apart = GeoBounds(LatLng(1.5, 1.5), LatLng(2.0, 2.0))

    assert a.intersects(touching)
    assert not a.intersects(apart)
    with pytest.raises(ValueError, match="south_west"):
        GeoBounds(LatLng(2.0, 0.0), LatLng(1.0, 1.0))
