"""
Transcript logging for finished bargaining sessions.

WHAT: Write a JSON transcript when a session reaches a terminal status
WHY: Audit trail of what was offered and agreed, independent of the database
HOW: One file per session under LOGS_DIR; files past retention are pruned at startup
"""

import json
import time
from datetime import timedelta
from pathlib import Path
from typing import Optional

from ..core.config import settings
from ..models.api_schemas import SessionView
from .price_policy import display_floor
from ..utils.logger import get_logger

logger = get_logger(__name__)


def save_transcript(session: SessionView, logs_dir: Optional[str] = None) -> Optional[Path]:
    """
    Save a finished session as JSON.

    WHAT: Serialize session header, price window and full message log
    WHY: Keep a readable record of each negotiation outcome
    HOW: Write <LOGS_DIR>/<session_id>.json; failures are logged, never raised

    Args:
        session: Session view in a terminal status
        logs_dir: Override for settings.LOGS_DIR

    Returns:
        Path to the written file, or None when disabled or the write failed
    """
    if not settings.AUTO_SAVE_TRANSCRIPTS:
        return None

    target_dir = Path(logs_dir or settings.LOGS_DIR)
    log_file = target_dir / f"{session.id}.json"

    transcript = {
        "session_id": session.id,
        "product": {"id": session.product_id, "title": session.product_title},
        "buyer_id": session.buyer_id,
        "seller_id": session.seller_id,
        "status": session.status,
        "pricing": {
            "initial_price": session.initial_price,
            "floor_price": display_floor(session.initial_price),
            "final_price": session.current_price if session.status == "accepted" else None,
        },
        "turns": {"buyer": session.buyer_turns, "seller": session.seller_turns},
        "created_at": session.created_at.isoformat(),
        "closed_at": session.updated_at.isoformat(),
        "messages": [message.model_dump(mode="json") for message in session.messages],
    }

    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        with open(log_file, "w", encoding="utf-8") as f:
            json.dump(transcript, f, indent=2)
    except OSError as e:
        logger.error(f"Failed to write transcript for session {session.id}: {e}")
        return None

    logger.info(f"Saved transcript for session {session.id} ({session.status}) to {log_file}")
    return log_file


def cleanup_old_transcripts(logs_dir: Optional[str] = None) -> int:
    """
    Delete transcripts older than LOG_RETENTION_DAYS.

    Returns:
        Number of files deleted
    """
    target_dir = Path(logs_dir or settings.LOGS_DIR)
    if not target_dir.exists():
        return 0

    max_age = timedelta(days=settings.LOG_RETENTION_DAYS).total_seconds()
    now = time.time()
    deleted_count = 0
    for log_file in target_dir.glob("*.json"):
        if now - log_file.stat().st_mtime > max_age:
            try:
                log_file.unlink()
                deleted_count += 1
            except OSError as e:
                logger.error(f"Failed to delete old transcript {log_file}: {e}")

    if deleted_count > 0:
        logger.info(f"Deleted {deleted_count} old transcripts (retention: {settings.LOG_RETENTION_DAYS} days)")
    return deleted_count
