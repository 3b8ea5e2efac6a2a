"""
Access repository - HTTP API sessions, credentials and per-IP throttling records
"""
import secrets
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from coinledger.infrastructure.db.models import ApiSession, IpRecord, User


def normalize_ip(ip: str | None) -> str:
    """
    Fold IPv6 loopback / IPv4-mapped addresses into plain IPv4

    Example:
        >>> normalize_ip("::ffff:10.0.0.1")
        "10.0.0.1"
    """
    if not ip:
        return "unknown"
    if ip == "::1":
        return "127.0.0.1"
    if ip.startswith("::ffff:") and ip.count(".") == 3:
        return ip[len("::ffff:"):]
    return ip


class AccessRepository:
    """Reads/writes sessions, ips and the credential columns of users"""

    def __init__(self, db: Session):
        self.db = db

    # Credentials

    def get_user_by_username(self, username: str) -> Optional[User]:
        if not username:
            return None
        return self.db.scalar(select(User).where(User.username == username))

    def user_id_exists(self, user_id: str) -> bool:
        return self.db.get(User, user_id) is not None

    def set_credentials(self, user_id: str, username: str | None, password_hash: str | None) -> None:
        self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(username=username, password_hash=password_hash)
            .execution_options(synchronize_session=False)
        )
        self.db.expire_all()

    # Sessions

    def create_session(self, user_id: str, created_at: int) -> str:
        session_id = secrets.token_hex(32)
        while self.db.get(ApiSession, session_id) is not None:
            session_id = secrets.token_hex(32)
        self.db.add(ApiSession(session_id=session_id, user_id=user_id, created_at=created_at))
        self.db.flush()
        return session_id

    def get_session(self, session_id: str) -> Optional[ApiSession]:
        if not session_id:
            return None
        return self.db.get(ApiSession, session_id)

    def list_user_sessions(self, user_id: str) -> List[ApiSession]:
        return list(self.db.scalars(select(ApiSession).where(ApiSession.user_id == user_id)))

    def delete_session(self, session_id: str) -> int:
        result = self.db.execute(
            delete(ApiSession).where(ApiSession.session_id == session_id).execution_options(synchronize_session=False)
        )
        self.db.expire_all()
        return result.rowcount or 0

    def delete_user_sessions(self, user_id: str) -> int:
        result = self.db.execute(
            delete(ApiSession).where(ApiSession.user_id == user_id).execution_options(synchronize_session=False)
        )
        self.db.expire_all()
        return result.rowcount or 0

    def delete_sessions_before(self, cutoff_seconds: int) -> int:
        result = self.db.execute(
            delete(ApiSession).where(ApiSession.created_at < cutoff_seconds).execution_options(synchronize_session=False)
        )
        self.db.expire_all()
        return result.rowcount or 0

    # IP records

    def get_ip_record(self, ip: str, record_type: int) -> Optional[IpRecord]:
        return self.db.get(IpRecord, (ip, record_type))

    def upsert_ip_record(self, ip: str, record_type: int, tries: int, time_ms: int) -> IpRecord:
        record = self.get_ip_record(ip, record_type)
        if record is None:
            record = IpRecord(ip=ip, type=record_type, tries=tries, time=time_ms)
            self.db.add(record)
        else:
            record.tries = tries
            record.time = time_ms
        self.db.flush()
        return record

    def delete_ip_record(self, ip: str, record_type: int) -> None:
        self.db.execute(
            delete(IpRecord)
            .where(IpRecord.ip == ip, IpRecord.type == record_type)
            .execution_options(synchronize_session=False)
        )
        self.db.expire_all()

    def delete_ip_records_before(self, record_type: int, cutoff_ms: int) -> int:
        result = self.db.execute(
            delete(IpRecord)
            .where(IpRecord.type == record_type, IpRecord.time < cutoff_ms)
            .execution_options(synchronize_session=False)
        )
        self.db.expire_all()
        return result.rowcount or 0
