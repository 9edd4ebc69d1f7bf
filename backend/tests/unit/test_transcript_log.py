"""
Unit tests for transcript logging.

WHAT: JSON transcript contents and retention cleanup
WHY: Transcripts are the audit trail of closed negotiations
HOW: Write into pytest's tmp_path and age files with os.utime
"""

import json
import os
import time

import pytest

from bargain.core.config import settings
from bargain.services.session_service import SessionService
from bargain.services.transcript_log import save_transcript, cleanup_old_transcripts


@pytest.fixture
def closed_session(buyer, seller, product):
    service = SessionService()
    view, _ = service.create_session(buyer, product, initial_offer=96.0)
    return service.update_status(view.id, seller, "accepted")


@pytest.mark.unit
class TestTranscriptLog:
    """Test transcript writing and pruning."""

    def test_save_transcript(self, tmp_path, closed_session):
        path = save_transcript(closed_session, logs_dir=str(tmp_path))

        data = json.loads(path.read_text())
        assert data["session_id"] == closed_session.id
        assert data["status"] == "accepted"
        assert data["pricing"] == {"initial_price": 100.0, "floor_price": 95.0, "final_price": 96.0}
        assert data["messages"][0]["offer_amount"] == 96.0

    def test_disabled(self, tmp_path, closed_session, monkeypatch):
        monkeypatch.setattr(settings, "AUTO_SAVE_TRANSCRIPTS", False)
        assert save_transcript(closed_session, logs_dir=str(tmp_path)) is None
        assert list(tmp_path.iterdir()) == []

    def test_cleanup_removes_only_old_files(self, tmp_path):
        old_file = tmp_path / "old.json"
        new_file = tmp_path / "new.json"
        old_file.write_text("{}")
        new_file.write_text("{}")
        aged = time.time() - (settings.LOG_RETENTION_DAYS + 1) * 86400
        os.utime(old_file, (aged, aged))

        assert cleanup_old_transcripts(logs_dir=str(tmp_path)) == 1
        assert not old_file.exists()
        assert new_file.exists()

    def test_cleanup_missing_directory(self, tmp_path):
        assert cleanup_old_transcripts(logs_dir=str(tmp_path / "absent")) == 0
