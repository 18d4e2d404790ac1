# facevote/storage_mongo.py
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from . import config
from .database.connection import get_database
from .errors import (
    CandidateNotFound,
    DuplicateAccount,
    ElectionNotFound,
    StorageError,
    TransientStorageError,
    VoterNotFound,
)
from .models import Candidate, Election, Voter
from .models.election_model import ELECTION_ID
from .storage import Transaction, _merge, _normalize_email

logger = logging.getLogger(__name__)


class MongoTransaction(Transaction):
    """Transaction bound to one client session; every call passes the session."""

    def __init__(self, db, session):
        self.session = session
        self.voters = db[config.VOTERS_COLLECTION_NAME]
        self.candidates = db[config.CANDIDATES_COLLECTION_NAME]
        self.elections = db[config.ELECTIONS_COLLECTION_NAME]

    @staticmethod
    def _dump(model) -> Dict[str, Any]:
        return model.model_dump(by_alias=True)

    def _set(self, collection, doc_id: str, model, fields: Dict[str, Any]):
        dumped = self._dump(model)
        changes = {key: dumped[key] for key in fields}
        return collection.find_one_and_update(
            {"_id": doc_id},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
            session=self.session,
        )

    # --- voters ---
    def get_voter(self, voter_id: str) -> Optional[Voter]:
        doc = self.voters.find_one({"_id": voter_id}, session=self.session)
        return Voter.model_validate(doc) if doc else None

    def find_voter(self, identifier: str) -> Optional[Voter]:
        doc = self.voters.find_one(
            {"$or": [{"email": _normalize_email(identifier)}, {"student_id": identifier}]},
            session=self.session,
        )
        return Voter.model_validate(doc) if doc else None

    def find_duplicate(self, email: str, student_id: Optional[str]) -> Optional[str]:
        email = _normalize_email(email)
        query = [{"email": email}]
        if student_id:
            query.append({"student_id": student_id})
        doc = self.voters.find_one({"$or": query}, {"email": 1}, session=self.session)
        if doc is None:
            return None
        return "email" if doc["email"] == email else "student_id"

    def list_voters(self, role: Optional[str] = None) -> List[Voter]:
        query = {"role": role} if role else {}
        cursor = self.voters.find(query, session=self.session).sort("created_at", -1)
        return [Voter.model_validate(doc) for doc in cursor]

    def insert_voter(self, voter: Voter) -> Voter:
        voter = _merge(Voter, voter, {"email": _normalize_email(voter.email)})
        try:
            self.voters.insert_one(self._dump(voter), session=self.session)
        except DuplicateKeyError as exc:
            field = "email" if "email" in str(exc) else "student_id"
            raise DuplicateAccount(field=field)
        return voter

    def update_voter(self, voter_id: str, **fields: Any) -> Voter:
        current = self.get_voter(voter_id)
        if current is None:
            raise VoterNotFound()
        updated = _merge(Voter, current, fields)
        self._set(self.voters, voter_id, updated, fields)
        return updated

    def clear_has_voted(self) -> int:
        result = self.voters.update_many(
            {"has_voted": True}, {"$set": {"has_voted": False}}, session=self.session
        )
        return result.modified_count

    # --- candidates ---
    def get_candidate(self, candidate_id: str) -> Optional[Candidate]:
        doc = self.candidates.find_one({"_id": candidate_id}, session=self.session)
        return Candidate.model_validate(doc) if doc else None

    def list_candidates(self) -> List[Candidate]:
        return [Candidate.model_validate(doc) for doc in self.candidates.find({}, session=self.session)]

    def insert_candidate(self, candidate: Candidate) -> Candidate:
        self.candidates.insert_one(self._dump(candidate), session=self.session)
        return candidate

    def increment_vote_count(self, candidate_id: str) -> Candidate:
        doc = self.candidates.find_one_and_update(
            {"_id": candidate_id},
            {"$inc": {"vote_count": 1}},
            return_document=ReturnDocument.AFTER,
            session=self.session,
        )
        if doc is None:
            raise CandidateNotFound()
        return Candidate.model_validate(doc)

    def reset_vote_counts(self) -> int:
        result = self.candidates.update_many({}, {"$set": {"vote_count": 0}}, session=self.session)
        return result.matched_count

    # --- election window ---
    def get_election(self) -> Optional[Election]:
        doc = self.elections.find_one({"_id": ELECTION_ID}, session=self.session)
        return Election.model_validate(doc) if doc else None

    def save_election(self, election: Election) -> Election:
        self.elections.replace_one(
            {"_id": election.id}, self._dump(election), upsert=True, session=self.session
        )
        return election

    def update_election(self, **fields: Any) -> Election:
        current = self.get_election()
        if current is None:
            raise ElectionNotFound()
        updated = _merge(Election, current, fields)
        self._set(self.elections, current.id, updated, fields)
        return updated


class MongoStorage:
    def __init__(self, uri: str = config.MONGO_URI, db_name: str = config.MONGO_DB, db=None):
        """Bind to a database; nothing is sent to the server until first use."""
        self.db = db if db is not None else get_database(uri, db_name)
        self.client = self.db.client
        self.db_name = self.db.name

    def ensure_indexes(self) -> None:
        try:
            voters = self.db[config.VOTERS_COLLECTION_NAME]
            voters.create_index("email", unique=True)
            voters.create_index(
                "student_id",
                unique=True,
                partialFilterExpression={"student_id": {"$type": "string"}},
            )
            self.client.server_info()
            logger.info(f"Connected to MongoDB: {self.db_name}")
        except PyMongoError as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        # Snapshot reads + majority writes; a concurrent writer on the same
        # document aborts this transaction with a TransientTransactionError.
        try:
            with self.client.start_session() as session:
                with session.start_transaction(
                    read_concern=ReadConcern("snapshot"),
                    write_concern=WriteConcern("majority"),
                ):
                    yield MongoTransaction(self.db, session)
        except PyMongoError as exc:
            if exc.has_error_label("TransientTransactionError") or exc.has_error_label(
                "UnknownTransactionCommitResult"
            ):
                logger.warning(f"Transaction aborted by a conflict: {exc}")
                raise TransientStorageError(conflict=True)
            logger.error(f"Transaction failed: {exc}")
            raise StorageError(reason=type(exc).__name__) from exc

    def close(self) -> None:
        self.client.close()
        logger.info("MongoDB connection closed")
