"""Cursor filter, color and tracker tests"""

import pytest

from diagramsync.realtime.cursors import (
    CURSOR_FRESHNESS_MS,
    CursorTracker,
    describe_cursors,
    filter_active_cursors,
    session_color,
    session_hue,
)
from diagramsync.realtime.display import display_name, initials_from
from diagramsync.schemas.realtime import PresenceParticipant, RemoteCursorState

NOW = 1_700_000_000_000
LOCAL_SESSION = "local-session"


def cursor(session_id: str, x: float = 0.5, y: float = 0.5, age_ms: int = 1000) -> RemoteCursorState:
    return RemoteCursorState(session_id=session_id, x=x, y=y, updated_at=NOW - age_ms)


def participant(session_id: str, **fields) -> PresenceParticipant:
    return PresenceParticipant(user_id=f"user-{session_id}", session_id=session_id, presence_ref=session_id, **fields)


class TestFilterActiveCursors:

    def test_fresh_in_range_remote_cursor_is_shown(self):
        fresh = cursor("remote")
        assert filter_active_cursors([fresh], LOCAL_SESSION, now=NOW) == [fresh]

    def test_stale_cursor_is_hidden(self):
        assert filter_active_cursors([cursor("remote", age_ms=15_000)], LOCAL_SESSION, now=NOW) == []

    def test_freshness_window_is_exclusive(self):
        edge = cursor("remote", age_ms=CURSOR_FRESHNESS_MS)
        assert filter_active_cursors([edge], LOCAL_SESSION, now=NOW) == []

    @pytest.mark.parametrize("x, y", [(1.5, 0.5), (0.5, -0.1), (-0.01, 2.0)])
    def test_out_of_range_cursor_is_hidden(self, x: float, y: float):
        assert filter_active_cursors([cursor("remote", x=x, y=y)], LOCAL_SESSION, now=NOW) == []

    def test_bounds_are_inclusive(self):
        corners = [cursor("a", x=0, y=0), cursor("b", x=1, y=1)]
        assert filter_active_cursors(corners, LOCAL_SESSION, now=NOW) == corners

    def test_own_session_is_hidden_even_when_fresh(self):
        assert filter_active_cursors([cursor(LOCAL_SESSION, age_ms=0)], LOCAL_SESSION, now=NOW) == []

    def test_input_is_not_modified(self):
        # Arrange
        cursors = [cursor("remote"), cursor("stale", age_ms=20_000)]

        # Act
        filter_active_cursors(cursors, LOCAL_SESSION, now=NOW)

        # Assert
        assert [c.session_id for c in cursors] == ["remote", "stale"]


class TestSessionColor:

    def test_known_hue(self):
        # 31-bazli rolling hash: "hello" -> 99162322
        assert session_hue("hello") == 99162322 % 360

    def test_same_session_same_color(self):
        assert session_color("session-42") == session_color("session-42")

    @pytest.mark.parametrize("session_id", ["", "a", "6f1c0b9e-4f7a-4c1e-9a77-2c5d1b0f8e11", "x" * 500, "emoji-\U0001F600"])
    def test_hue_in_range(self, session_id: str):
        assert 0 <= session_hue(session_id) < 360

    def test_color_format(self):
        assert session_color("ab") == "hsl(225, 85%, 60%)"


class TestCursorTracker:

    def test_apply_records_latest_position(self):
        # Arrange
        tracker = CursorTracker()

        # Act
        tracker.apply("s1", {"x": 0.1, "y": 0.2}, user_id="u1", received_at=NOW - 5000)
        tracker.apply("s1", (0.3, 0.4), received_at=NOW)

        # Assert
        assert len(tracker) == 1
        latest = tracker.all()[0]
        assert (latest.x, latest.y, latest.updated_at) == (0.3, 0.4, NOW)

    def test_none_position_removes(self):
        # Arrange
        tracker = CursorTracker()
        tracker.apply("s1", {"x": 0.1, "y": 0.2})

        # Act
        removed = tracker.apply("s1", None)

        # Assert
        assert removed is None
        assert len(tracker) == 0

    def test_stale_records_are_hidden_not_deleted(self):
        # Arrange
        tracker = CursorTracker()
        tracker.apply("old", {"x": 0.5, "y": 0.5}, received_at=NOW - 60_000)
        tracker.apply("off-canvas", {"x": 3, "y": 0.5}, received_at=NOW)
        tracker.apply("live", {"x": 0.5, "y": 0.5}, received_at=NOW)

        # Act
        active = tracker.active(LOCAL_SESSION, now=NOW)

        # Assert
        assert [c.session_id for c in active] == ["live"]
        assert len(tracker) == 3

    def test_clear(self):
        tracker = CursorTracker()
        tracker.apply("s1", {"x": 0.1, "y": 0.2})
        tracker.clear()
        assert tracker.all() == []


class TestDescribeCursors:

    def test_label_from_participant(self):
        # Arrange
        cursors = [cursor("s1"), cursor("s2"), cursor("s3")]
        participants = [
            participant("s1", name="Ada"),
            participant("s2", email="grace@example.com"),
        ]

        # Act
        views = describe_cursors(cursors, participants)

        # Assert
        assert [v.label for v in views] == ["Ada", "grace@example.com", "Collaborator"]
        assert views[0].color == session_color("s1")
        assert views[0].to_wire() == {
            "sessionId": "s1",
            "x": 0.5,
            "y": 0.5,
            "color": session_color("s1"),
            "label": "Ada",
        }


class TestDisplayHelpers:

    def test_empty_name_is_kept(self):
        assert display_name(participant("s1", name="", email="x@example.com")) == ""

    def test_missing_participant(self):
        assert display_name(None) == "Collaborator"

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("Ada Lovelace", "AL"),
            ("ada", "AD"),
            ("Grace Brewster Hopper", "GH"),
            ("", "?"),
            (None, "?"),
        ],
    )
    def test_initials(self, value, expected: str):
        assert initials_from(value) == expected
