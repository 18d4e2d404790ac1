# facevote/errors.py
"""
Error taxonomy shared by the ledger, the lockout guard and the HTTP routes.

Every error carries the HTTP status it surfaces as, plus optional extra fields
(remaining attempts, minutes until unlock) that the routes put in the response.
"""
from typing import Any, Dict


class VotingError(Exception):
    status_code = 500
    message = "Internal Server Error"

    def __init__(self, message: str = None, **extra: Any):
        self.message = message or self.message
        self.extra = extra
        super().__init__(self.message)

    @property
    def detail(self) -> Dict[str, Any]:
        return {"message": self.message, "code": type(self).__name__, **self.extra}


class ValidationError(VotingError):
    status_code = 400
    message = "Invalid request"


# --- Authentication ---

class AuthError(VotingError):
    status_code = 401
    message = "Not authorized"


class InvalidCredentials(AuthError):
    message = "Invalid email or password"


class AccountLocked(AuthError):
    status_code = 423
    message = "Account is temporarily locked"


class FaceVerificationRequired(AuthError):
    status_code = 428
    message = "Face verification required"


class FaceMismatch(AuthError):
    message = "Face does not match the enrolled face"


class NoEnrolledDescriptor(AuthError):
    status_code = 400
    message = "No face enrolled for this account"


class Forbidden(AuthError):
    status_code = 403
    message = "Not authorized as an admin"


# --- Lookups ---

class NotFoundError(VotingError):
    status_code = 404
    message = "Not found"


class VoterNotFound(NotFoundError):
    message = "User not found"


class CandidateNotFound(NotFoundError):
    message = "Candidate not found"


class ElectionNotFound(NotFoundError):
    message = "Election not configured"


# --- State conflicts ---

class StateConflict(VotingError):
    status_code = 400
    message = "Conflicting state"


class AlreadyVoted(StateConflict):
    message = "You have already voted"


class NotVerified(StateConflict):
    status_code = 403
    message = "You must be verified to vote"


class ElectionClosed(StateConflict):
    status_code = 403
    message = "Election is not open for voting"


class DuplicateAccount(StateConflict):
    message = "User already exists"


class InvalidStatusTransition(StateConflict):
    message = "Verification status can only change from pending"


class ResultsNotPublished(StateConflict):
    status_code = 403
    message = "Results not published yet"


# --- Data / storage ---

class CorruptBiometricData(VotingError):
    status_code = 500
    message = "Stored face data is corrupt; contact an administrator"


class StorageError(VotingError):
    status_code = 500
    message = "Storage error"


class TransientStorageError(StorageError):
    status_code = 503
    message = "Storage temporarily unavailable. Please try again."

    def __init__(self, message: str = None, **extra: Any):
        extra.setdefault("retryable", True)
        super().__init__(message, **extra)
