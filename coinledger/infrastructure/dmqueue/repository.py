"""
DM queue repository - FIFO of outbound direct messages
"""
import json
from typing import Any, Dict, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from coinledger.infrastructure.db.models import DmJob
from coinledger.utils.clock import now_ms


class DmQueueRepository:
    """
    enqueue / next_job / remove over the dm_queue table

    Example:
        >>> queue = DmQueueRepository(db)
        >>> queue.enqueue("123", {"title": "Bill Paid", "description": "..."})
        >>> job = queue.next_job()
        >>> queue.remove(job.id)
    """

    def __init__(self, db: Session):
        self.db = db

    def enqueue(self, user_id: str, message: Dict[str, Any] | str) -> int:
        """
        Append a message for user_id

        Args:
            message: plain text or a {"title", "description"} dict

        Returns:
            Job id (monotonic)
        """
        if isinstance(message, str):
            message = {"description": message}
        job = DmJob(user_id=user_id, payload_json=json.dumps(message, ensure_ascii=False), created_at=now_ms())
        self.db.add(job)
        self.db.flush()
        return job.id

    def next_job(self) -> Optional[DmJob]:
        """Oldest pending job, or None when the queue is empty"""
        return self.db.scalar(select(DmJob).order_by(DmJob.id.asc()).limit(1))

    def remove(self, job_id: int) -> None:
        self.db.execute(delete(DmJob).where(DmJob.id == job_id).execution_options(synchronize_session=False))
        self.db.expire_all()

    def count(self) -> int:
        return self.db.scalar(select(func.count()).select_from(DmJob)) or 0

    @staticmethod
    def decode(job: DmJob) -> Dict[str, Any]:
        return json.loads(job.payload_json)
