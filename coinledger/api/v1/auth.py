"""
Account API endpoints (login, register, logout, credentials)
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from coinledger.api.deps import AuthContext, client_ip, get_store, require_session
from coinledger.application.accounts import (
    LoginLocked, LoginUseCase, RegisterUseCase, SessionUseCase, UpdateCredentialsUseCase,
)
from coinledger.infrastructure.ledger.store import LedgerStore


router = APIRouter(prefix="/api", tags=["auth"])


# === Request models ===

class CredentialsRequest(BaseModel):
    username: str
    passwordHash: str


# === Endpoints ===

@router.post("/login")
def login(request: Request, req: CredentialsRequest, store: LedgerStore = Depends(get_store)):
    """Username + passwordHash -> bearer session"""
    try:
        result = LoginUseCase(store).execute(req.username, req.passwordHash, client_ip(request))
    except LoginLocked as exc:
        retry_seconds = -(-exc.remaining_ms // 1000)
        return JSONResponse(
            status_code=429,
            content={
                "sessionCreated": False,
                "passwordCorrect": False,
                "error": f"IP blocked. Try again in {retry_seconds} seconds.",
            },
        )
    return result.to_dict()


@router.post("/register")
def register(request: Request, req: CredentialsRequest, store: LedgerStore = Depends(get_store)):
    user_id = RegisterUseCase(store).execute(req.username, req.passwordHash, client_ip(request))
    return {"success": True, "userId": user_id}


@router.post("/logout")
def logout(auth: AuthContext = Depends(require_session), store: LedgerStore = Depends(get_store)):
    SessionUseCase(store).logout(auth.session_id)
    return {"success": True}


@router.post("/account/update")
def update_account(
    req: CredentialsRequest,
    auth: AuthContext = Depends(require_session),
    store: LedgerStore = Depends(get_store),
):
    UpdateCredentialsUseCase(store).execute(auth.user_id, req.username, req.passwordHash)
    return {"success": True}


@router.post("/account/unregister")
def unregister(auth: AuthContext = Depends(require_session), store: LedgerStore = Depends(get_store)):
    """Drop credentials and the current session; the wallet stays"""
    SessionUseCase(store).unregister(auth.user_id, auth.session_id)
    return {"success": True}
