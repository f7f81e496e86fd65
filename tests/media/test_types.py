"""Tests for media server response parsing."""

import pytest

from lynx_fm.exceptions import MediaServerError
from lynx_fm.media import TrackMetadata


class TestTrackMetadata:
    """Test TrackMetadata.from_response()."""

    def test_json_with_track_id(self) -> None:
        track = TrackMetadata.from_response(
            '{"track_id": "t1", "title": "Song", "artist": "Band", "album": "LP", "duration_ms": 185000}'
        )
        assert track == TrackMetadata("t1", "Song", "Band", "LP", 185000)

    def test_json_with_id(self) -> None:
        assert TrackMetadata.from_response('{"id": 42}').track_id == "42"

    def test_track_id_wins_over_id(self) -> None:
        assert TrackMetadata.from_response('{"id": "x", "track_id": "y"}').track_id == "y"

    def test_duration_in_seconds(self) -> None:
        assert TrackMetadata.from_response('{"id": "t", "duration": 12.5}').duration_ms == 12500

    @pytest.mark.parametrize(
        "body",
        [
            '{"track_id": "t1", "duration": "3:45"}',
            '{"track_id": "t1", "duration_ms": "long"}',
            '{"track_id": "t1", "duration_ms": [185000]}',
            '{"track_id": "t1", "duration": "inf"}',
        ],
    )
    def test_malformed_duration_is_zero(self, body: str) -> None:
        track = TrackMetadata.from_response(body)
        assert track.track_id == "t1"
        assert track.duration_ms == 0

    def test_numeric_string_duration(self) -> None:
        assert TrackMetadata.from_response('{"id": "t", "duration_ms": "1500"}').duration_ms == 1500

    def test_plain_text(self) -> None:
        assert TrackMetadata.from_response("  abc-123\n").track_id == "abc-123"

    def test_json_string(self) -> None:
        assert TrackMetadata.from_response('"abc"').track_id == "abc"

    @pytest.mark.parametrize("body", ["", "   ", "{}", '{"title": "x"}', "[1, 2]", '{"id": ""}'])
    def test_no_track_id(self, body: str) -> None:
        with pytest.raises(MediaServerError):
            TrackMetadata.from_response(body)

    def test_display_name(self) -> None:
        assert TrackMetadata("t1").display_name() == "t1"
        assert TrackMetadata("t1", title="Song").display_name() == "Song"
        assert TrackMetadata("t1", title="Song", artist="Band").display_name() == "Band - Song"
