from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, constr


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    student_id: Optional[str] = None
    enrolled_descriptor: Optional[List[float]] = None


class LoginRequest(BaseModel):
    # email or student id
    identifier: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    live_descriptor: Optional[List[float]] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: dict


class FaceVerifyRequest(BaseModel):
    live_descriptor: List[float] = Field(..., min_length=1)


class FaceVerifyResponse(BaseModel):
    verified: bool
    distance: float


class VoteRequest(BaseModel):
    candidate_id: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: constr(pattern="^(verified|rejected)$")


class PasswordConfirmRequest(BaseModel):
    password: str = Field(..., min_length=1)


class CandidateCreate(BaseModel):
    name: str = Field(..., min_length=1)
    party: str = Field(..., min_length=1)
    manifesto: str = ""


class ElectionConfigRequest(BaseModel):
    start_date: datetime
    end_date: datetime
    title: Optional[str] = None
    description: Optional[str] = None


class PublishRequest(BaseModel):
    publish: bool
