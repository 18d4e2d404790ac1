from fastapi import APIRouter, Depends

from ..dependencies import get_current_user, get_ledger, http_error
from ..errors import VotingError
from ..ledger import VoteLedger
from ..models import Voter
from ..schemas import VoteRequest

vote_router = APIRouter(prefix="/api/vote", tags=["Vote"])


@vote_router.post("")
def cast_vote(body: VoteRequest, user: Voter = Depends(get_current_user),
              ledger: VoteLedger = Depends(get_ledger)):
    """
    Casts the caller's single, final ballot.
    """
    try:
        receipt = ledger.cast_vote(user.id, body.candidate_id)
    except VotingError as e:
        raise http_error(e)
    return {
        "message": "Vote cast successfully",
        "candidate": receipt.candidate_name,
        "candidate_id": receipt.candidate_id,
        "cast_at": receipt.cast_at,
    }
