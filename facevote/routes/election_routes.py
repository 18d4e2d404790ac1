from fastapi import APIRouter, Depends

from ..dependencies import get_ledger, http_error
from ..errors import VotingError
from ..ledger import VoteLedger

router = APIRouter(prefix="/api/election", tags=["Election"])


@router.get("")
def get_election_config(ledger: VoteLedger = Depends(get_ledger)):
    try:
        election = ledger.get_election()
    except VotingError as e:
        raise http_error(e)
    return election.model_dump(by_alias=True)


@router.get("/results")
def get_results(ledger: VoteLedger = Depends(get_ledger)):
    try:
        return ledger.results()
    except VotingError as e:
        raise http_error(e)
