import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Protocol

import jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wiki.core import models
from wiki.core.config import settings
from wiki.core.errors import Forbidden, StorageError, Unauthenticated
from wiki.core.schemas import UserRole

logger = logging.getLogger(__name__)

# Hash mechanism
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# Hash the password
def hash_password(password: str):
    return pwd_context.hash(password)


# Verify the password
def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


# =========================
# Capabilities and subjects
# =========================
class Capability(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


ALL_CAPABILITIES = (Capability.CREATE, Capability.UPDATE, Capability.DELETE)

ROLE_CAPABILITIES: Dict[UserRole, FrozenSet[Capability]] = {
    UserRole.ADMIN: frozenset(ALL_CAPABILITIES),
    UserRole.EDITOR: frozenset(ALL_CAPABILITIES),
    UserRole.WRITER: frozenset({Capability.UPDATE}),
    UserRole.READER: frozenset(),
}

# Token claim carrying each capability
CAPABILITY_CLAIMS: Dict[Capability, str] = {
    Capability.CREATE: "canCreate",
    Capability.UPDATE: "canUpdate",
    Capability.DELETE: "canDelete",
}


@dataclass(frozen=True)
class Subject:
    """An authenticated principal.

    ``capabilities`` holds what was resolved for the current request only.
    ``role`` is set for session subjects, ``claims`` for token subjects.
    """

    username: str
    role: Optional[UserRole] = None
    claims: Mapping[str, object] = field(default_factory=dict)
    capabilities: FrozenSet[Capability] = frozenset()

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities


class AuthProvider(Protocol):
    async def authenticate(self, credentials: Mapping[str, str]) -> Subject: ...

    async def is_authorized(self, subject: Subject, capability: Capability) -> bool: ...


# =========================
# Credential store (web sessions, token issuance)
# =========================
class CredentialStore:
    """Username/password users kept in the users table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _find(self, username: str) -> Optional[models.User]:
        try:
            async with self.session_factory() as session:
                query = select(models.User).where(models.User.username == username)
                result = await session.execute(query)
                return result.scalars().first()
        except SQLAlchemyError as error:
            logger.error(f"Credential store lookup error: {error}")
            raise StorageError("Credential store unavailable", error)

    async def authenticate(self, credentials: Mapping[str, str]) -> Subject:
        username = credentials.get("username")
        password = credentials.get("password")
        if not username or not password:
            raise Unauthenticated("Missing username or password")

        user = await self._find(username)
        if user is None or not verify_password(password, user.password):
            raise Unauthenticated("Invalid username or password")
        return Subject(username=user.username, role=UserRole(user.role))

    async def load_subject(self, username: str) -> Subject:
        """Re-read a session user, so role changes apply on the next request."""
        user = await self._find(username)
        if user is None:
            raise Unauthenticated("Session user no longer exists")
        return Subject(username=user.username, role=UserRole(user.role))

    async def is_authorized(self, subject: Subject, capability: Capability) -> bool:
        if subject.role is None:
            return False
        return capability in ROLE_CAPABILITIES[subject.role]

    async def create_user(
        self, username: str, password: str, role: UserRole = UserRole.READER
    ) -> models.User:
        try:
            async with self.session_factory() as session:
                user = models.User(
                    username=username, password=hash_password(password), role=role.value
                )
                session.add(user)
                await session.commit()
                await session.refresh(user)
                return user
        # Duplicate usernames land here too, with an IntegrityError cause
        except SQLAlchemyError as error:
            logger.error(f"Credential store update error: {error}")
            raise StorageError(f"Could not create user {username}", error)


# =========================
# Token issuer / verifier (API)
# =========================
class TokenAuth:
    subject_claim = "Wiki API"
    issuer = "wiki"

    def __init__(
        self,
        secret_key: str = settings.SECRET_KEY,
        algorithm: str = settings.ALGORITHM,
        expire_minutes: int = settings.ACCESS_TOKEN_EXPIRE_MINUTES,
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def generate_token(self, subject: Subject) -> str:
        to_encode = {
            CAPABILITY_CLAIMS[cap]: subject.can(cap) for cap in ALL_CAPABILITIES
        }
        expire_time = datetime.now(timezone.utc) + timedelta(
            minutes=self.expire_minutes
        )
        to_encode.update(
            {
                "username": subject.username,
                "sub": self.subject_claim,
                "iss": self.issuer,
                "exp": expire_time,
            }
        )
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    async def authenticate(self, credentials: Mapping[str, str]) -> Subject:
        token = credentials.get("token")
        if not token:
            raise Unauthenticated("Missing bearer token")

        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
            )
        # Expired, tampered or foreign tokens
        except jwt.PyJWTError as error:
            logger.info(f"Rejected API token: {error}")
            raise Unauthenticated("Could not validate credentials")

        username = payload.get("username")
        if not username:
            raise Unauthenticated("Could not validate credentials")
        return Subject(username=username, claims=payload)

    async def is_authorized(self, subject: Subject, capability: Capability) -> bool:
        return subject.claims.get(CAPABILITY_CLAIMS[capability]) is True


# =========================
# Authorization pipeline
# =========================
async def resolve_capabilities(
    provider: AuthProvider,
    subject: Subject,
    capabilities: Iterable[Capability] = ALL_CAPABILITIES,
) -> Subject:
    """
    Run one authorization check per capability concurrently and wait for
    all of them. A check that fails to resolve counts as not granted and
    does not stop the others.
    """
    wanted = list(capabilities)
    outcomes = await asyncio.gather(
        *(provider.is_authorized(subject, cap) for cap in wanted),
        return_exceptions=True,
    )

    granted = set()
    for cap, outcome in zip(wanted, outcomes):
        if isinstance(outcome, BaseException):
            logger.warning(f"Capability check {cap.value} failed for {subject.username}: {outcome}")
        elif outcome is True:
            granted.add(cap)
    return replace(subject, capabilities=frozenset(granted))


def require(subject: Subject, capability: Capability) -> Subject:
    if not subject.can(capability):
        raise Forbidden(f"{subject.username} is not allowed to {capability.value} pages")
    return subject
