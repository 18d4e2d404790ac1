# facevote/session.py
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"


ALLOWED = {
    AuthState.UNAUTHENTICATED: {AuthState.LOADING},
    AuthState.LOADING: {AuthState.AUTHENTICATED, AuthState.UNAUTHENTICATED},
    AuthState.AUTHENTICATED: {AuthState.LOADING, AuthState.UNAUTHENTICATED},
}


@dataclass
class AuthSession:
    """Client auth state, handed explicitly to whatever needs it."""
    state: AuthState = AuthState.UNAUTHENTICATED
    token: Optional[str] = None
    user: Optional[dict] = None
    error: Optional[str] = None

    def _move(self, new_state: AuthState) -> None:
        if new_state not in ALLOWED[self.state]:
            raise RuntimeError(f"Cannot go from {self.state.value} to {new_state.value}")
        self.state = new_state

    def begin(self) -> None:
        self._move(AuthState.LOADING)
        self.error = None

    def succeed(self, token: str, user: dict) -> None:
        self._move(AuthState.AUTHENTICATED)
        self.token = token
        self.user = user

    def fail(self, reason: str) -> None:
        self._move(AuthState.UNAUTHENTICATED)
        self.token = None
        self.user = None
        self.error = reason

    def logout(self) -> None:
        self._move(AuthState.UNAUTHENTICATED)
        self.token = None
        self.user = None

    @property
    def is_authenticated(self) -> bool:
        return self.state == AuthState.AUTHENTICATED

    def auth_header(self) -> Dict[str, str]:
        if not self.is_authenticated:
            raise RuntimeError("Not logged in")
        return {"Authorization": f"Bearer {self.token}"}
