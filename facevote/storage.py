# facevote/storage.py
"""
AccountStore contract plus an in-process implementation.

Every read and write goes through ``store.transaction()``: a context manager
yielding a Transaction that commits when the block exits normally and
discards every change when it raises. MemoryStorage serializes transactions
with one lock and works on a private copy, so it behaves like a serializable
store; it backs development runs and the test-suite, optionally persisted to
a JSON file.
"""
import copy
import json
import os
import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar

from . import config
from .errors import (
    CandidateNotFound,
    DuplicateAccount,
    ElectionNotFound,
    TransientStorageError,
    VoterNotFound,
)
from .models import Candidate, Election, Voter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Transaction:
    """Operations available inside one atomic unit of work."""

    # --- voters ---
    def get_voter(self, voter_id: str) -> Optional[Voter]:
        raise NotImplementedError

    def find_voter(self, identifier: str) -> Optional[Voter]:
        """Look a voter up by email or student id."""
        raise NotImplementedError

    def find_duplicate(self, email: str, student_id: Optional[str]) -> Optional[str]:
        """Name of the unique field ('email' / 'student_id') already taken, if any."""
        raise NotImplementedError

    def list_voters(self, role: Optional[str] = None) -> List[Voter]:
        raise NotImplementedError

    def insert_voter(self, voter: Voter) -> Voter:
        raise NotImplementedError

    def update_voter(self, voter_id: str, **fields: Any) -> Voter:
        raise NotImplementedError

    def clear_has_voted(self) -> int:
        raise NotImplementedError

    # --- candidates ---
    def get_candidate(self, candidate_id: str) -> Optional[Candidate]:
        raise NotImplementedError

    def list_candidates(self) -> List[Candidate]:
        raise NotImplementedError

    def insert_candidate(self, candidate: Candidate) -> Candidate:
        raise NotImplementedError

    def increment_vote_count(self, candidate_id: str) -> Candidate:
        raise NotImplementedError

    def reset_vote_counts(self) -> int:
        raise NotImplementedError

    # --- election window ---
    def get_election(self) -> Optional[Election]:
        raise NotImplementedError

    def save_election(self, election: Election) -> Election:
        raise NotImplementedError

    def update_election(self, **fields: Any) -> Election:
        raise NotImplementedError


def _merge(model_cls, current, fields: Dict[str, Any]):
    return model_cls.model_validate({**current.model_dump(by_alias=True), **fields})


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class MemoryTransaction(Transaction):
    def __init__(self, data: Dict[str, Any]):
        self._data = data

    @staticmethod
    def _dump(model) -> Dict[str, Any]:
        return model.model_dump(by_alias=True, mode="json")

    # --- voters ---
    def get_voter(self, voter_id: str) -> Optional[Voter]:
        doc = self._data["voters"].get(voter_id)
        return Voter.model_validate(doc) if doc else None

    def find_voter(self, identifier: str) -> Optional[Voter]:
        email = _normalize_email(identifier)
        for doc in self._data["voters"].values():
            if doc["email"] == email or (doc.get("student_id") and doc["student_id"] == identifier):
                return Voter.model_validate(doc)
        return None

    def find_duplicate(self, email: str, student_id: Optional[str]) -> Optional[str]:
        email = _normalize_email(email)
        for doc in self._data["voters"].values():
            if doc["email"] == email:
                return "email"
            if student_id and doc.get("student_id") == student_id:
                return "student_id"
        return None

    def list_voters(self, role: Optional[str] = None) -> List[Voter]:
        voters = [Voter.model_validate(doc) for doc in self._data["voters"].values()]
        return [v for v in voters if role is None or v.role == role]

    def insert_voter(self, voter: Voter) -> Voter:
        voter = _merge(Voter, voter, {"email": _normalize_email(voter.email)})
        field = self.find_duplicate(voter.email, voter.student_id)
        if field or voter.id in self._data["voters"]:
            raise DuplicateAccount(field=field or "_id")
        self._data["voters"][voter.id] = self._dump(voter)
        return voter

    def update_voter(self, voter_id: str, **fields: Any) -> Voter:
        current = self.get_voter(voter_id)
        if current is None:
            raise VoterNotFound()
        updated = _merge(Voter, current, fields)
        self._data["voters"][voter_id] = self._dump(updated)
        return updated

    def clear_has_voted(self) -> int:
        cleared = 0
        for voter_id, doc in self._data["voters"].items():
            if doc.get("has_voted"):
                self.update_voter(voter_id, has_voted=False)
                cleared += 1
        return cleared

    # --- candidates ---
    def get_candidate(self, candidate_id: str) -> Optional[Candidate]:
        doc = self._data["candidates"].get(candidate_id)
        return Candidate.model_validate(doc) if doc else None

    def list_candidates(self) -> List[Candidate]:
        return [Candidate.model_validate(doc) for doc in self._data["candidates"].values()]

    def insert_candidate(self, candidate: Candidate) -> Candidate:
        self._data["candidates"][candidate.id] = self._dump(candidate)
        return candidate

    def _update_candidate(self, candidate_id: str, **fields: Any) -> Candidate:
        current = self.get_candidate(candidate_id)
        if current is None:
            raise CandidateNotFound()
        updated = _merge(Candidate, current, fields)
        self._data["candidates"][candidate_id] = self._dump(updated)
        return updated

    def increment_vote_count(self, candidate_id: str) -> Candidate:
        current = self.get_candidate(candidate_id)
        if current is None:
            raise CandidateNotFound()
        return self._update_candidate(candidate_id, vote_count=current.vote_count + 1)

    def reset_vote_counts(self) -> int:
        candidate_ids = list(self._data["candidates"])
        for candidate_id in candidate_ids:
            self._update_candidate(candidate_id, vote_count=0)
        return len(candidate_ids)

    # --- election window ---
    def get_election(self) -> Optional[Election]:
        doc = self._data.get("election")
        return Election.model_validate(doc) if doc else None

    def save_election(self, election: Election) -> Election:
        self._data["election"] = self._dump(election)
        return election

    def update_election(self, **fields: Any) -> Election:
        current = self.get_election()
        if current is None:
            raise ElectionNotFound()
        return self.save_election(_merge(Election, current, fields))


class MemoryStorage:
    def __init__(self, path: Optional[str] = config.MEMORY_DB_PATH):
        self.path = path
        self._lock = threading.RLock()
        self._data = self._read_db()

    def _empty(self) -> Dict[str, Any]:
        return {"voters": {}, "candidates": {}, "election": None}

    def _read_db(self) -> Dict[str, Any]:
        """
        Read the JSON file if one is configured.
        If it is missing or empty, start from an empty store.
        """
        if not self.path or not os.path.exists(self.path):
            return self._empty()
        with open(self.path, "r") as f:
            content = f.read()
        if not content.strip():
            return self._empty()
        data = json.loads(content)
        return {**self._empty(), **data}

    def _write_db(self) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w") as f:
            json.dump(self._data, f, indent=2)
        os.replace(tmp_path, self.path)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        with self._lock:
            working = copy.deepcopy(self._data)
            yield MemoryTransaction(working)
            self._data = working
            if self.path:
                self._write_db()

    def ensure_indexes(self) -> None:
        logger.info(f"Using in-memory storage (persisted to {self.path or 'nowhere'})")

    def close(self) -> None:
        pass


def create_storage(backend: str = None):
    backend = backend or config.STORAGE_BACKEND
    if backend == "memory":
        return MemoryStorage()
    if backend == "mongo":
        from .storage_mongo import MongoStorage
        return MongoStorage()
    raise ValueError(f"Unknown storage backend '{backend}'")


def run_in_transaction(store, work: Callable[[Transaction], T],
                       retries: int = config.TXN_MAX_RETRIES) -> T:
    """
    Run ``work(tx)`` as one unit of work, re-executing it from scratch when the
    store aborts the transaction for a transient reason. Domain errors raised
    by ``work`` roll back and propagate immediately.
    """
    attempt = 0
    while True:
        try:
            with store.transaction() as tx:
                return work(tx)
        except TransientStorageError:
            attempt += 1
            if attempt > retries:
                logger.error(f"Transaction gave up after {attempt} attempts")
                raise
            logger.info(f"Retrying aborted transaction (attempt {attempt + 1})")
