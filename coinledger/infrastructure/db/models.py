"""
SQLAlchemy ORM models (ledger tables)

Amounts are integer sats. Transaction timestamps are ISO-8601 strings;
cooldowns, bill expiries, backups, DM jobs and IP records use epoch
milliseconds; API sessions use epoch seconds.
"""
from sqlalchemy import String, Integer, BigInteger, Boolean, Text, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from coinledger.infrastructure.db.session import Base


class User(Base):
    """
    Wallet owner (platform user id, e.g. a Discord snowflake)

    username/password_hash are set only for HTTP API users.
    """
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_users_balance_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    cooldown: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    notified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")

    username: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)


class Transaction(Base):
    """
    Immutable balance movement record

    from_id == MINT_ID for claim rewards.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        Index("ix_transactions_from_id", "from_id"),
        Index("ix_transactions_to_id", "to_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    timestamp: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    from_id: Mapped[str] = mapped_column(String(64), nullable=False)
    to_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)


class Bill(Base):
    """
    Payment request; empty from_id means "whoever pays it"
    """
    __tablename__ = "bills"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_bills_amount_positive"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    from_id: Mapped[str] = mapped_column(String(64), nullable=False, default="", server_default="", index=True)
    to_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    expiry: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)


class Card(Base):
    """Bearer credential; at most one per owner"""
    __tablename__ = "cards"

    code: Mapped[str] = mapped_column(String(64), primary_key=True)
    code_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    owner_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)


class Backup(Base):
    """Single-use wallet restore code"""
    __tablename__ = "backups"

    code: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)


class ApiSession(Base):
    """HTTP API bearer session"""
    __tablename__ = "sessions"

    session_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)


class DmJob(Base):
    """Queued direct message (FIFO by id)"""
    __tablename__ = "dm_queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)


# IP record types
IP_LOGIN_FAILURES = 1
IP_REGISTRATION = 2


class IpRecord(Base):
    """
    Per-IP throttling state

    type 1: failed logins (tries + time of last failure)
    type 2: last account registration
    """
    __tablename__ = "ips"

    ip: Mapped[str] = mapped_column(String(64), primary_key=True)
    type: Mapped[int] = mapped_column(Integer, primary_key=True)
    tries: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    time: Mapped[int] = mapped_column(BigInteger, nullable=False)
