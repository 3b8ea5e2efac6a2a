"""
Outbound notifications - DM queue producer and the Discord delivery drain

Ledger mutations commit first; notifications are queued afterwards and their
failures are only logged.
"""
import logging
import threading
import time
from typing import Callable, Dict, Any, Iterable

import requests
from sqlalchemy.orm import Session

from coinledger.config import get_settings
from coinledger.infrastructure.dmqueue.repository import DmQueueRepository

logger = logging.getLogger(__name__)

_drain_lock = threading.Lock()


def notify(db: Session, user_id: str, title: str, lines: Iterable[str]) -> bool:
    """
    Queue a DM and commit it on its own

    Returns:
        True if queued; False if queuing failed (logged, never raised)
    """
    if not user_id:
        return False
    try:
        DmQueueRepository(db).enqueue(user_id, {"title": title, "description": "\n".join(lines)})
        db.commit()
        return True
    except Exception:
        db.rollback()
        logger.exception("Failed to queue DM for user_id=%s", user_id)
        return False


def _send_discord_dm(user_id: str, payload: Dict[str, Any]) -> bool:
    """Open a DM channel and post one embed. Returns True on success."""
    cfg = get_settings()
    if not cfg.DISCORD_BOT_TOKEN:
        logger.warning("DISCORD_BOT_TOKEN not set, dropping DM for user_id=%s", user_id)
        return False
    headers = {"Authorization": f"Bot {cfg.DISCORD_BOT_TOKEN}"}
    try:
        channel = requests.post(
            f"{cfg.DISCORD_API_BASE}/users/@me/channels",
            json={"recipient_id": user_id},
            headers=headers,
            timeout=5,
        )
        if channel.status_code >= 300:
            logger.warning("DM channel for user_id=%s failed: HTTP %s", user_id, channel.status_code)
            return False
        resp = requests.post(
            f"{cfg.DISCORD_API_BASE}/channels/{channel.json()['id']}/messages",
            json={"embeds": [{
                "title": payload.get("title", ""),
                "description": payload.get("description", ""),
                "type": "rich",
            }]},
            headers=headers,
            timeout=5,
        )
        return resp.status_code < 300
    except Exception:
        logger.exception("Discord DM failed for user_id=%s", user_id)
        return False


def drain_dm_queue(
    db: Session,
    send: Callable[[str, Dict[str, Any]], bool] = _send_discord_dm,
    delay_seconds: float | None = None,
) -> int:
    """
    Deliver queued DMs in FIFO order until the queue is empty

    A job is removed whether or not delivery succeeded. If another drain is
    already running this call returns immediately.

    Returns:
        Number of jobs processed by this call
    """
    if not _drain_lock.acquire(blocking=False):
        logger.debug("DM drain already running, skipping")
        return 0

    if delay_seconds is None:
        delay_seconds = get_settings().DM_SEND_DELAY_SECONDS
    queue = DmQueueRepository(db)
    processed = 0
    try:
        while True:
            job = queue.next_job()
            if job is None:
                break
            job_id, user_id = job.id, job.user_id
            try:
                if not send(user_id, queue.decode(job)):
                    logger.warning("DM %s to user_id=%s not delivered", job_id, user_id)
            except Exception:
                logger.exception("DM %s to user_id=%s raised", job_id, user_id)
            finally:
                queue.remove(job_id)
                db.commit()
            processed += 1
            if delay_seconds:
                time.sleep(delay_seconds)
    finally:
        _drain_lock.release()
    return processed
