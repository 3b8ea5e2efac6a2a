"""
FastAPI dependencies (DB session, ledger store, bearer session)
"""
from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from coinledger.application.accounts import SessionUseCase
from coinledger.domain.errors import Unauthorized
from coinledger.infrastructure.db.session import get_db as _get_db
from coinledger.infrastructure.ledger.store import LedgerStore


# Re-export get_db for routers and test overrides
get_db = _get_db


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    session_id: str


def get_store(db: Session = Depends(get_db)) -> LedgerStore:
    return LedgerStore(db)


def client_ip(request: Request) -> str | None:
    """First X-Forwarded-For hop (tunnel in front of the API), else the peer address"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def require_session(request: Request, store: LedgerStore = Depends(get_store)) -> AuthContext:
    """
    Resolve `Authorization: Bearer <sessionId>`

    Raises:
        Unauthorized: missing/unknown/expired session (-> 403 "operation failed")

    Usage:
        @router.post("/api/claim")
        def claim(auth: AuthContext = Depends(require_session)):
            ...
    """
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized("Missing bearer session")
    session_id = token.strip()
    user_id = SessionUseCase(store).resolve(session_id)
    return AuthContext(user_id=user_id, session_id=session_id)
