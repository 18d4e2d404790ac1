# facevote/ledger.py
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from . import config
from .clock import Clock, SystemClock, as_utc
from .errors import (
    AlreadyVoted,
    CandidateNotFound,
    ElectionClosed,
    ElectionNotFound,
    NotVerified,
    ResultsNotPublished,
    ValidationError,
    VoterNotFound,
    VotingError,
)
from .models import Election, VerificationStatus, VoteReceipt
from .storage import Transaction, run_in_transaction

logger = logging.getLogger(__name__)


class VoteLedger:
    """
    Ballot casting and the election-wide admin operations.

    Each public operation is one unit of work on the store: every check is
    made against the transaction's own view and every write commits together
    or not at all. A vote is final; there is no change or undo.
    """

    def __init__(self, store, clock: Clock = None, retries: int = config.TXN_MAX_RETRIES):
        self.store = store
        self.clock = clock or SystemClock()
        self.retries = retries

    def _atomic(self, work):
        return run_in_transaction(self.store, work, retries=self.retries)

    def cast_vote(self, voter_id: str, candidate_id: str) -> VoteReceipt:
        if not candidate_id:
            raise ValidationError("Candidate ID is required")

        def work(tx: Transaction) -> VoteReceipt:
            now = self.clock.now()
            voter = tx.get_voter(voter_id)
            if voter is None:
                raise VoterNotFound()
            if voter.verification_status != VerificationStatus.VERIFIED:
                raise NotVerified()
            if voter.has_voted:
                raise AlreadyVoted()
            election = tx.get_election()
            if election is None or not election.is_open(now):
                raise ElectionClosed()
            if tx.get_candidate(candidate_id) is None:
                raise CandidateNotFound()

            candidate = tx.increment_vote_count(candidate_id)
            tx.update_voter(voter_id, has_voted=True)
            return VoteReceipt(
                voter_id=voter_id,
                candidate_id=candidate.id,
                candidate_name=candidate.name,
                cast_at=now,
            )

        try:
            receipt = self._atomic(work)
        except VotingError as exc:
            logger.info(f"Vote by {voter_id} rejected: {type(exc).__name__}")
            raise
        logger.info(f"Vote by {voter_id} committed")
        return receipt

    # ==========================================================================
    # Admin operations
    # ==========================================================================

    def reset_election(self) -> Dict[str, int]:
        """Zero every tally, clear every has_voted flag and unpublish results, as one unit."""
        def work(tx: Transaction) -> Dict[str, int]:
            candidates = tx.reset_vote_counts()
            voters = tx.clear_has_voted()
            if tx.get_election() is not None:
                tx.update_election(results_published=False, published_at=None)
            return {"candidates_reset": candidates, "voters_reset": voters}

        summary = self._atomic(work)
        logger.warning(f"Election reset: {summary}")
        return summary

    def emergency_stop(self) -> Election:
        """
        Close the election now. Votes already in flight may still commit;
        any vote starting after this commits sees the new end date.
        """
        def work(tx: Transaction) -> Election:
            now = self.clock.now()
            election = tx.get_election()
            if election is None:
                raise ElectionNotFound()
            if election.end_date <= now:
                return election
            return tx.update_election(end_date=now)

        election = self._atomic(work)
        logger.warning(f"Emergency stop: election ends at {election.end_date.isoformat()}")
        return election

    def configure_election(self, start_date: datetime, end_date: datetime,
                           title: Optional[str] = None, description: Optional[str] = None) -> Election:
        start_date, end_date = as_utc(start_date), as_utc(end_date)
        if start_date >= end_date:
            raise ValidationError("End date must be after start date")

        def work(tx: Transaction) -> Election:
            current = tx.get_election()
            fields: Dict[str, Any] = {"start_date": start_date, "end_date": end_date}
            if title:
                fields["title"] = title
            if description:
                fields["description"] = description
            if current is None:
                return tx.save_election(Election(**fields))
            return tx.update_election(**fields)

        return self._atomic(work)

    def publish_results(self, publish: bool) -> Election:
        def work(tx: Transaction) -> Election:
            if tx.get_election() is None:
                raise ElectionNotFound()
            return tx.update_election(
                results_published=publish,
                published_at=self.clock.now() if publish else None,
            )

        election = self._atomic(work)
        logger.info(f"Results {'published' if publish else 'unpublished'}")
        return election

    def get_election(self) -> Election:
        election = self._atomic(lambda tx: tx.get_election())
        if election is None:
            raise ElectionNotFound()
        return election

    def results(self) -> Dict[str, Any]:
        def work(tx: Transaction):
            return tx.get_election(), tx.list_candidates()

        election, candidates = self._atomic(work)
        if election is None or not election.results_published:
            raise ResultsNotPublished()
        rows = sorted(
            ({"_id": c.id, "name": c.name, "party": c.party, "votes": c.vote_count} for c in candidates),
            key=lambda row: row["votes"],
            reverse=True,
        )
        return {
            "published_at": election.published_at,
            "total_votes": sum(row["votes"] for row in rows),
            "winner": rows[0] if rows else None,
            "results": rows,
        }
