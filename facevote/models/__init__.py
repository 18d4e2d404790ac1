from .voter_model import Biometrics, Role, VerificationStatus, Voter
from .election_model import Candidate, Election
from .vote_model import VoteReceipt

__all__ = [
    "Biometrics",
    "Candidate",
    "Election",
    "Role",
    "VerificationStatus",
    "VoteReceipt",
    "Voter",
]
