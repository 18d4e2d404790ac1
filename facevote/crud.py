# facevote/crud.py
"""Account operations: registration, login, face verification and admin account actions."""
import logging
from typing import List, Optional, Sequence, Tuple

from . import config
from .clock import Clock, SystemClock
from .errors import (
    DuplicateAccount,
    FaceMismatch,
    FaceVerificationRequired,
    Forbidden,
    InvalidCredentials,
    InvalidStatusTransition,
    NoEnrolledDescriptor,
    ValidationError,
    VoterNotFound,
)
from .face_utils import decrypt_descriptor, encrypt_descriptor, parse_descriptor
from .lockout import LockoutGuard
from .matcher import MatchContext, MatchResult, match
from .models import Biometrics, Candidate, Role, VerificationStatus, Voter
from .security import hash_password, verify_password
from .storage import Transaction, run_in_transaction

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGES = {
    "email": "User with this email already exists",
    "student_id": "User with this Student ID already exists",
}


def _enrolled_descriptor(voter: Voter):
    return decrypt_descriptor(voter.biometrics.descriptor_enc, voter.biometrics.dim)


# Create a new voter (or admin) account
def register(store, name: str, email: str, password: str, student_id: Optional[str] = None,
             enrolled_descriptor: Optional[Sequence[float]] = None, role: Role = Role.VOTER,
             clock: Clock = None) -> Voter:
    clock = clock or SystemClock()
    if not name or not name.strip():
        raise ValidationError("Name is required")
    if not email or not password:
        raise ValidationError("Email and password are required")
    descriptor = parse_descriptor(enrolled_descriptor, "enrolled_descriptor")
    if descriptor is not None and descriptor.size != config.EMBED_DIM:
        raise ValidationError(f"enrolled_descriptor must have {config.EMBED_DIM} values", received=int(descriptor.size))

    biometrics = None
    if descriptor is not None:
        biometrics = Biometrics(descriptor_enc=encrypt_descriptor(descriptor), dim=int(descriptor.size))

    voter = Voter(
        name=name.strip(),
        email=email,
        student_id=student_id or None,
        password_hash=hash_password(password),
        role=role,
        verification_status=VerificationStatus.PENDING,
        has_voted=False,
        biometrics=biometrics,
        created_at=clock.now(),
    )

    def work(tx: Transaction) -> Voter:
        field = tx.find_duplicate(voter.email, voter.student_id)
        if field:
            raise DuplicateAccount(DUPLICATE_MESSAGES[field], field=field)
        return tx.insert_voter(voter)

    created = run_in_transaction(store, work)
    logger.info(f"Registered {created.role} {created.id} (face enrolled: {created.has_enrolled_face})")
    return created


def login(store, guard: LockoutGuard, identifier: str, password: str,
          live_descriptor: Optional[Sequence[float]] = None) -> Voter:
    if not identifier or not password:
        raise ValidationError("Identifier and password are required")
    live = parse_descriptor(live_descriptor, "live_descriptor")

    def check(voter: Voter) -> None:
        if not verify_password(password, voter.password_hash):
            raise InvalidCredentials()
        if not voter.has_enrolled_face:
            if not config.ALLOW_LOGIN_WITHOUT_ENROLLED_FACE:
                raise NoEnrolledDescriptor()
            logger.warning(f"Login for {voter.id} without face check: no enrolled descriptor")
            return
        if live is None:
            raise FaceVerificationRequired()
        result = match(live, _enrolled_descriptor(voter), MatchContext.LOGIN)
        if not result.matched:
            raise FaceMismatch(distance=round(result.distance, 4))

    voter = guard.authenticate(store, identifier, check)
    logger.info(f"Login succeeded for {voter.id}")
    return voter


def verify_face(store, voter_id: str, live_descriptor: Sequence[float]) -> Tuple[MatchResult, Voter]:
    """Explicit verification under the stricter threshold; promotes pending voters."""
    live = parse_descriptor(live_descriptor, "live_descriptor")
    if live is None:
        raise ValidationError("live_descriptor is required")

    def work(tx: Transaction):
        voter = tx.get_voter(voter_id)
        if voter is None:
            raise VoterNotFound()
        if not voter.has_enrolled_face:
            raise NoEnrolledDescriptor()
        result = match(live, _enrolled_descriptor(voter), MatchContext.EXPLICIT_VERIFY)
        if result.matched and voter.verification_status == VerificationStatus.PENDING:
            voter = tx.update_voter(voter.id, verification_status=VerificationStatus.VERIFIED)
        return result, voter

    result, voter = run_in_transaction(store, work)
    logger.info(f"Face verification for {voter_id}: verified={result.matched} distance={result.distance:.4f}")
    return result, voter


def get_voter(store, voter_id: str) -> Voter:
    voter = run_in_transaction(store, lambda tx: tx.get_voter(voter_id))
    if voter is None:
        raise VoterNotFound()
    return voter


# ==============================================================================
# Admin account actions
# ==============================================================================

def list_voters(store) -> List[dict]:
    voters = run_in_transaction(store, lambda tx: tx.list_voters(role=Role.VOTER))
    return [v.public() for v in voters]


def set_verification_status(store, voter_id: str, status: str) -> Voter:
    if status not in (VerificationStatus.VERIFIED, VerificationStatus.REJECTED):
        raise ValidationError("Invalid verification status")

    def work(tx: Transaction) -> Voter:
        voter = tx.get_voter(voter_id)
        if voter is None:
            raise VoterNotFound()
        if voter.verification_status != VerificationStatus.PENDING:
            raise InvalidStatusTransition(current=voter.verification_status)
        return tx.update_voter(voter_id, verification_status=status)

    voter = run_in_transaction(store, work)
    logger.info(f"Voter {voter_id} marked {status} by admin")
    return voter


def confirm_admin_password(store, admin_id: str, password: str) -> Voter:
    """Re-check the acting admin's own password before a destructive operation."""
    admin = get_voter(store, admin_id)
    if admin.role != Role.ADMIN:
        raise Forbidden()
    if not password or not verify_password(password, admin.password_hash):
        raise InvalidCredentials("Password confirmation failed")
    return admin


def add_candidate(store, name: str, party: str, manifesto: str = "") -> Candidate:
    if not name or not party:
        raise ValidationError("Candidate name and party are required")
    candidate = Candidate(name=name, party=party, manifesto=manifesto)
    return run_in_transaction(store, lambda tx: tx.insert_candidate(candidate))
