from datetime import datetime

from pydantic import BaseModel


class VoteReceipt(BaseModel):
    voter_id: str
    candidate_id: str
    candidate_name: str
    cast_at: datetime
