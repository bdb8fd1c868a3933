# chatledger/registry/identity.py
import logging
from typing import List, Union

from chatledger.core.errors import DuplicateIdentity, UnknownIdentity
from chatledger.core.types import User, UserId
from chatledger.storage import StorageBackend

logger = logging.getLogger(__name__)


class IdentityRegistry:
    """Maps user ids to public keys. Records are never overwritten or deleted."""

    def __init__(self, storage: StorageBackend):
        self.storage = storage

    def register(self, user_id: Union[UserId, str], public_key: str) -> User:
        user_id = UserId.of(user_id)
        if not isinstance(public_key, str) or not public_key:
            raise ValueError("public_key must be a non-empty string")

        with self.storage.transaction():
            if self.storage.get_public_key(user_id) is not None:
                logger.warning("Rejected duplicate registration for %s", user_id)
                raise DuplicateIdentity(user_id)
            user = User(id=user_id, public_key=public_key)
            self.storage.insert_identity(user)

        logger.info("Registered user %s", user_id)
        return user

    def get_public_key(self, user_id: Union[UserId, str]) -> str:
        user_id = UserId.of(user_id)
        key = self.storage.get_public_key(user_id)
        if key is None:
            raise UnknownIdentity(user_id)
        return key

    def exists(self, user_id: Union[UserId, str]) -> bool:
        return self.storage.get_public_key(UserId.of(user_id)) is not None

    def require(self, *user_ids: UserId) -> None:
        """Raise UnknownIdentity for the first id that is not registered."""
        for user_id in user_ids:
            if not self.exists(user_id):
                raise UnknownIdentity(user_id)

    def list_users(self) -> List[UserId]:
        return self.storage.list_identities()
