"""
Unit tests for dirauth.notify module.
"""

from dirauth.core.types import FailureDetail
from dirauth.notify import SessionFlashWriter


class TestSessionFlashWriter:
    """Tests for SessionFlashWriter."""

    def test_writes_under_flash_key(self):
        """Test messages are stored under Flash.<key>."""
        session = {}
        writer = SessionFlashWriter(session)

        writer([FailureDetail(code="data 52e", message="Invalid username or password")])

        assert session == {
            "Flash.flash": [
                {
                    "message": "Invalid username or password",
                    "key": "flash",
                    "element": "Flash/error",
                    "params": {},
                }
            ]
        }

    def test_groups_by_key(self):
        """Test messages are grouped per presentation key, in order."""
        session = {}
        SessionFlashWriter(session)(
            [
                FailureDetail(message="first", key="auth"),
                FailureDetail(message="other", key="flash"),
                FailureDetail(message="second", key="auth"),
            ]
        )

        assert [m["message"] for m in session["Flash.auth"]] == ["first", "second"]
        assert [m["message"] for m in session["Flash.flash"]] == ["other"]

    def test_replaces_previous_messages(self):
        """Test a new failure replaces older messages for the same key."""
        session = {"Flash.flash": [{"message": "stale"}]}
        SessionFlashWriter(session)([FailureDetail(message="fresh")])
        assert [m["message"] for m in session["Flash.flash"]] == ["fresh"]

    def test_diagnostic_not_stored(self):
        """Test the raw diagnostic never reaches the session."""
        session = {}
        SessionFlashWriter(session)([FailureDetail(message="x", diagnostic="DSID-0C09042F")])
        assert "DSID" not in repr(session)

    def test_no_failures_no_write(self):
        """Test an empty failure list leaves the session untouched."""
        session = {}
        SessionFlashWriter(session)([])
        assert session == {}
