# facevote/dependencies.py
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from . import crud
from .clock import Clock
from .errors import AuthError, Forbidden, VotingError
from .ledger import VoteLedger
from .lockout import LockoutGuard
from .models import Role, Voter
from .security import TokenService

bearer_scheme = HTTPBearer(auto_error=False)


def http_error(exc: VotingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail)


def get_storage(request: Request):
    return request.app.state.storage


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_tokens(request: Request) -> TokenService:
    return request.app.state.tokens


def get_guard(request: Request) -> LockoutGuard:
    return request.app.state.guard


def get_ledger(request: Request) -> VoteLedger:
    return request.app.state.ledger


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_tokens),
    store=Depends(get_storage),
) -> Voter:
    try:
        if credentials is None:
            raise AuthError("Not authorized, no token")
        payload = tokens.decode(credentials.credentials)
        return crud.get_voter(store, payload["sub"])
    except VotingError as e:
        if e.status_code == 404:
            e = AuthError("Not authorized, user no longer exists")
        raise http_error(e)


def require_admin(user: Voter = Depends(get_current_user)) -> Voter:
    if user.role != Role.ADMIN:
        raise http_error(Forbidden())
    return user
