# facevote/client.py
import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from . import errors
from .session import AuthSession

logger = logging.getLogger(__name__)


def _error_types() -> Dict[str, type]:
    found, stack = {}, [errors.VotingError]
    while stack:
        cls = stack.pop()
        found[cls.__name__] = cls
        stack.extend(cls.__subclasses__())
    return found


ERROR_TYPES = _error_types()


def error_from_response(resp: httpx.Response) -> errors.VotingError:
    """Rebuild the typed error the server raised from its JSON detail."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    detail = body.get("detail") if isinstance(body, dict) else body
    if not isinstance(detail, dict):
        exc = errors.VotingError(str(detail or resp.text or resp.reason_phrase))
        exc.status_code = resp.status_code
        return exc
    extra = {k: v for k, v in detail.items() if k not in ("message", "code")}
    cls = ERROR_TYPES.get(detail.get("code"), errors.VotingError)
    exc = cls(detail.get("message"), **extra)
    exc.status_code = resp.status_code
    return exc


class VoterClient:
    """HTTP client for the voter flow; login state lives in the injected AuthSession."""

    def __init__(self, session: AuthSession, base_url: str = "http://localhost:8000",
                 http: Optional[httpx.Client] = None):
        self.session = session
        self.http = http or httpx.Client(base_url=base_url, timeout=10.0)

    def _check(self, resp: httpx.Response) -> Any:
        if resp.is_success:
            return resp.json()
        raise error_from_response(resp)

    def login(self, identifier: str, password: str, descriptor: Optional[Sequence[float]] = None) -> dict:
        self.session.begin()
        payload = {"identifier": identifier, "password": password}
        if descriptor is not None:
            payload["live_descriptor"] = [float(v) for v in descriptor]
        try:
            body = self._check(self.http.post("/api/auth/login", json=payload))
        except errors.VotingError as exc:
            self.session.fail(exc.message)
            raise
        except httpx.HTTPError as exc:
            self.session.fail(str(exc))
            raise
        self.session.succeed(body["access_token"], body["user"])
        logger.info(f"Logged in as {body['user'].get('email')}")
        return body["user"]

    def logout(self) -> None:
        self.session.logout()

    def profile(self) -> dict:
        return self._check(self.http.get("/api/auth/profile", headers=self.session.auth_header()))

    def verify_face(self, descriptor: Sequence[float]) -> dict:
        payload = {"live_descriptor": [float(v) for v in descriptor]}
        return self._check(self.http.post("/api/face/verify", json=payload, headers=self.session.auth_header()))

    def cast_vote(self, candidate_id: str) -> dict:
        return self._check(self.http.post("/api/vote", json={"candidate_id": candidate_id},
                                          headers=self.session.auth_header()))

    def close(self) -> None:
        self.http.close()
