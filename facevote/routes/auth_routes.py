from fastapi import APIRouter, Depends

from .. import crud
from ..clock import Clock
from ..dependencies import get_clock, get_current_user, get_guard, get_storage, get_tokens, http_error
from ..errors import VotingError
from ..lockout import LockoutGuard
from ..models import Voter
from ..schemas import FaceVerifyRequest, FaceVerifyResponse, LoginRequest, RegisterRequest, TokenResponse
from ..security import TokenService

router = APIRouter(prefix="/api/auth", tags=["Auth"])
face_router = APIRouter(prefix="/api/face", tags=["Face"])


def _session(voter: Voter, tokens: TokenService) -> TokenResponse:
    token = tokens.create_access_token({"sub": voter.id, "role": voter.role})
    return TokenResponse(access_token=token, user=voter.public())


@router.post("/register", response_model=TokenResponse, status_code=201)
def register(body: RegisterRequest, store=Depends(get_storage), clock: Clock = Depends(get_clock),
             tokens: TokenService = Depends(get_tokens)):
    try:
        voter = crud.register(
            store,
            name=body.name,
            email=body.email,
            password=body.password,
            student_id=body.student_id,
            enrolled_descriptor=body.enrolled_descriptor,
            clock=clock,
        )
    except VotingError as e:
        raise http_error(e)
    return _session(voter, tokens)


@router.post("/login", response_model=TokenResponse)
def login(body: LoginRequest, store=Depends(get_storage), guard: LockoutGuard = Depends(get_guard),
          tokens: TokenService = Depends(get_tokens)):
    """
    401 bad credentials or face mismatch (with remaining_attempts),
    423 locked (with minutes_remaining), 428 face required, 500 corrupt face data.
    """
    try:
        voter = crud.login(store, guard, body.identifier, body.password, body.live_descriptor)
    except VotingError as e:
        raise http_error(e)
    return _session(voter, tokens)


@router.get("/profile")
def profile(user: Voter = Depends(get_current_user)):
    return user.public()


@face_router.post("/verify", response_model=FaceVerifyResponse)
def verify_face(body: FaceVerifyRequest, user: Voter = Depends(get_current_user), store=Depends(get_storage)):
    try:
        result, _ = crud.verify_face(store, user.id, body.live_descriptor)
    except VotingError as e:
        raise http_error(e)
    return FaceVerifyResponse(verified=result.matched, distance=result.distance)
