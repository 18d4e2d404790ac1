from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..clock import as_utc
from .voter_model import new_id

ELECTION_ID = "current"


class Candidate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")
    name: str
    party: str
    manifesto: str = ""
    vote_count: int = Field(default=0, ge=0)


class Election(BaseModel):
    """The single election window; written by admins, read by the ledger."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default=ELECTION_ID, alias="_id")
    title: str = "Student Council Election"
    description: str = "Vote for your next student council representatives."
    start_date: datetime
    end_date: datetime
    results_published: bool = False
    published_at: Optional[datetime] = None

    @field_validator("start_date", "end_date", "published_at")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # window checks compare against the aware clock
        return as_utc(value)

    def is_open(self, now: datetime) -> bool:
        return self.start_date <= now < self.end_date
