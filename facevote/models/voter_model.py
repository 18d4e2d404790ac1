from datetime import datetime
from enum import Enum
from typing import Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field


def new_id() -> str:
    return str(ObjectId())


class Role(str, Enum):
    VOTER = "voter"
    ADMIN = "admin"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class Biometrics(BaseModel):
    # Fernet-encrypted float32 descriptor, base64 text
    descriptor_enc: str
    dim: int
    model: str = "face-api_recognition_128"


class Voter(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=new_id, alias="_id")
    name: str
    email: str
    student_id: Optional[str] = None
    password_hash: str
    role: Role = Role.VOTER
    verification_status: VerificationStatus = VerificationStatus.PENDING
    has_voted: bool = False
    login_attempts: int = Field(default=0, ge=0)
    lock_until: Optional[datetime] = None
    biometrics: Optional[Biometrics] = None
    created_at: Optional[datetime] = None

    @property
    def has_enrolled_face(self) -> bool:
        return self.biometrics is not None

    def is_locked(self, now: datetime) -> bool:
        return self.lock_until is not None and self.lock_until > now

    def public(self) -> dict:
        """Profile view without the password hash or the descriptor."""
        return {
            "_id": self.id,
            "name": self.name,
            "email": self.email,
            "student_id": self.student_id,
            "role": self.role,
            "verification_status": self.verification_status,
            "has_voted": self.has_voted,
            "has_enrolled_face": self.has_enrolled_face,
        }
