"""User registration and login."""

from typing import List, Tuple

import structlog

import errors
from database import UserStore, doc_to_dict
from schemas import UserOut
from security import CredentialVerifier, check_password, hash_password

logger = structlog.get_logger(__name__)


class AccountService:
    def __init__(self, store: UserStore, verifier: CredentialVerifier, bcrypt_rounds: int = 12):
        self.store = store
        self.verifier = verifier
        self.bcrypt_rounds = bcrypt_rounds

    async def register(self, name: str, email: str, password: str) -> Tuple[UserOut, str]:
        if await self.store.find_by_email(email):
            raise errors.Conflict("User already exists")
        user = await self.store.create(name, email, hash_password(password, self.bcrypt_rounds))
        logger.info("User registered", user_id=user.id)
        return user, self.verifier.issue(user.email, user_id=user.id)

    async def login(self, email: str, password: str) -> Tuple[UserOut, str]:
        doc = await self.store.find_by_email(email)
        if not doc or not check_password(password, doc.get("password")):
            logger.info("Login failed", email=email)
            raise errors.Unauthenticated("Invalid credentials")
        doc.pop("password", None)
        user = UserOut(**doc_to_dict(doc))
        return user, self.verifier.issue(user.email, user_id=user.id)

    async def list_users(self) -> List[UserOut]:
        return await self.store.list_all()
