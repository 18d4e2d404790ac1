import logging

from fastapi import APIRouter, Depends

from .. import crud
from ..dependencies import get_ledger, get_storage, http_error, require_admin
from ..errors import VotingError
from ..ledger import VoteLedger
from ..models import Voter
from ..schemas import (
    CandidateCreate,
    ElectionConfigRequest,
    PasswordConfirmRequest,
    PublishRequest,
    StatusUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.get("/voters")
def get_all_voters(admin: Voter = Depends(require_admin), store=Depends(get_storage)):
    return crud.list_voters(store)


@router.put("/verify-voter/{voter_id}")
def verify_voter(voter_id: str, status_update: StatusUpdateRequest,
                 admin: Voter = Depends(require_admin), store=Depends(get_storage)):
    try:
        voter = crud.set_verification_status(store, voter_id, status_update.status)
    except VotingError as e:
        raise http_error(e)
    return {"message": f"User {voter.verification_status} successfully", "user": voter.public()}


@router.post("/candidates", status_code=201)
def create_candidate(candidate: CandidateCreate, admin: Voter = Depends(require_admin),
                     store=Depends(get_storage)):
    try:
        created = crud.add_candidate(store, candidate.name, candidate.party, candidate.manifesto)
    except VotingError as e:
        raise http_error(e)
    return created.model_dump(by_alias=True)


@router.put("/election")
def update_election_config(body: ElectionConfigRequest, admin: Voter = Depends(require_admin),
                           ledger: VoteLedger = Depends(get_ledger)):
    try:
        election = ledger.configure_election(body.start_date, body.end_date, body.title, body.description)
    except VotingError as e:
        raise http_error(e)
    return election.model_dump(by_alias=True)


@router.put("/election/publish")
def toggle_publish_results(body: PublishRequest, admin: Voter = Depends(require_admin),
                           ledger: VoteLedger = Depends(get_ledger)):
    try:
        election = ledger.publish_results(body.publish)
    except VotingError as e:
        raise http_error(e)
    return {
        "message": f"Results {'published' if body.publish else 'unpublished'} successfully",
        "results_published": election.results_published,
        "published_at": election.published_at,
    }


@router.post("/election/reset")
def reset_election(body: PasswordConfirmRequest, admin: Voter = Depends(require_admin),
                   store=Depends(get_storage), ledger: VoteLedger = Depends(get_ledger)):
    try:
        crud.confirm_admin_password(store, admin.id, body.password)
        summary = ledger.reset_election()
    except VotingError as e:
        raise http_error(e)
    logger.warning(f"Election reset by admin {admin.id}")
    return {"message": "Election reset successfully", **summary}


@router.post("/election/emergency-stop")
def emergency_stop(body: PasswordConfirmRequest, admin: Voter = Depends(require_admin),
                   store=Depends(get_storage), ledger: VoteLedger = Depends(get_ledger)):
    try:
        crud.confirm_admin_password(store, admin.id, body.password)
        election = ledger.emergency_stop()
    except VotingError as e:
        raise http_error(e)
    logger.warning(f"Emergency stop by admin {admin.id}")
    return {"message": "Election stopped", "end_date": election.end_date}
