# facevote/security.py
from datetime import timedelta

from jose import JWTError, jwt
from passlib.context import CryptContext

from . import config
from .clock import Clock, SystemClock
from .errors import AuthError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# Hash a password
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


# Verify a plain password against a hash
def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


class TokenService:
    """
    Issues and checks bearer session tokens. Expiry is checked against the
    injected clock rather than the wall clock.
    """

    def __init__(self, clock: Clock = None, secret_key: str = config.SECRET_KEY,
                 algorithm: str = config.ALGORITHM,
                 expire_minutes: int = config.ACCESS_TOKEN_EXPIRE_MINUTES):
        self.clock = clock or SystemClock()
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def create_access_token(self, data: dict) -> str:
        to_encode = data.copy()
        expire = self.clock.now() + timedelta(minutes=self.expire_minutes)
        to_encode.update({"exp": int(expire.timestamp())})
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def decode(self, token: str) -> dict:
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm],
                                 options={"verify_exp": False})
        except JWTError:
            raise AuthError("Not authorized, token failed")
        if payload.get("exp", 0) <= self.clock.now().timestamp():
            raise AuthError("Not authorized, token expired")
        if not payload.get("sub"):
            raise AuthError("Not authorized, token failed")
        return payload
