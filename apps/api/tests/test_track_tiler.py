"""
Tests for polyline decoding and H3 tiling.
"""
import h3
import polyline
import pytest

from services.territory_errors import InvalidPath
from services.track_tiler import decode_path, tile_for_point, tiles_for_path, tiles_for_points

from territory_fixtures import SQUARE, SQUARE_POLYLINE


class TestDecodePath:
    def test_decodes_points_in_order(self):
        points = decode_path(SQUARE_POLYLINE)
        assert len(points) == len(SQUARE)
        for (lat, lng), (exp_lat, exp_lng) in zip(points, SQUARE):
            assert lat == pytest.approx(exp_lat)
            assert lng == pytest.approx(exp_lng)

    @pytest.mark.parametrize("encoded", [None, "", "   "])
    def test_empty_path_is_invalid(self, encoded):
        with pytest.raises(InvalidPath):
            decode_path(encoded)

    def test_truncated_path_is_invalid(self):
        # Every char has the continuation bit set, so the decoder runs off the end.
        with pytest.raises(InvalidPath) as exc:
            decode_path("~~~~")
        assert exc.value.reason == "INVALID_PATH"

    def test_unexpected_decoder_error_propagates(self, monkeypatch):
        def broken_decode(encoded):
            raise RuntimeError("decoder bug")

        monkeypatch.setattr(polyline, "decode", broken_decode)
        with pytest.raises(RuntimeError):
            decode_path(SQUARE_POLYLINE)


class TestTiles:
    def test_square_hits_four_distinct_tiles(self):
        tiles = tiles_for_path(SQUARE_POLYLINE, 10)
        assert len(tiles) == 4
        assert tiles == {h3.latlng_to_cell(lat, lng, 10) for lat, lng in SQUARE}

    def test_tile_count_bounded_by_point_count(self):
        for resolution in (5, 7, 10, 12):
            tiles = tiles_for_path(SQUARE_POLYLINE, resolution)
            assert 1 <= len(tiles) <= len(SQUARE)

    def test_tiles_carry_requested_resolution(self):
        tiles = tiles_for_path(SQUARE_POLYLINE, 7)
        assert {h3.get_resolution(t) for t in tiles} == {7}

    def test_single_point_path(self):
        tiles = tiles_for_path(polyline.encode([(18.52, 73.85)]), 10)
        assert tiles == {h3.latlng_to_cell(18.52, 73.85, 10)}

    def test_deterministic(self):
        assert tiles_for_path(SQUARE_POLYLINE, 10) == tiles_for_path(SQUARE_POLYLINE, 10)

    @pytest.mark.parametrize("resolution", [-1, 16])
    def test_unsupported_resolution(self, resolution):
        with pytest.raises(InvalidPath):
            tiles_for_points(SQUARE, resolution)

    def test_out_of_range_point(self):
        with pytest.raises(InvalidPath):
            tile_for_point(95.0, 73.85, 10)

    def test_indexer_error_is_invalid_path(self, monkeypatch):
        def rejecting_indexer(lat, lng, resolution):
            raise ValueError("bad cell")

        monkeypatch.setattr(h3, "latlng_to_cell", rejecting_indexer)
        with pytest.raises(InvalidPath):
            tile_for_point(18.52, 73.85, 10)

    def test_unexpected_indexer_error_propagates(self, monkeypatch):
        def broken_indexer(lat, lng, resolution):
            raise RuntimeError("indexer bug")

        monkeypatch.setattr(h3, "latlng_to_cell", broken_indexer)
        with pytest.raises(RuntimeError):
            tile_for_point(18.52, 73.85, 10)
