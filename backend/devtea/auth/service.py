"""In-memory user directory used to bootstrap chat identities.

Authentication is mocked: whatever profile the caller posts becomes a user.
The directory only guarantees a stable id, a unique username and a short
shareable user code.
"""
import logging
import re
import secrets
import string
import threading
import uuid
from typing import Dict, List, Optional

from .schemas import UserRecord

logger = logging.getLogger(__name__)

USER_CODE_LENGTH = 6
USER_CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_SEARCH_RESULTS = 10


class UserDirectory:
    """Process-local user store keyed by user id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.users: Dict[str, UserRecord] = {}

    def create(self, email: str, name: str, picture: Optional[str] = None) -> UserRecord:
        """Create a user, suffixing the username with a counter until unique."""
        base = re.sub(r"\s+", "", name.lower())
        with self._lock:
            taken = {user.username for user in self.users.values()}
            username = base
            counter = 1
            while username in taken:
                username = f"{base}{counter}"
                counter += 1

            user = UserRecord(
                id=str(uuid.uuid4()),
                email=email,
                name=name,
                username=username,
                avatar=picture,
                userCode="".join(secrets.choice(USER_CODE_ALPHABET) for _ in range(USER_CODE_LENGTH)),
            )
            self.users[user.id] = user
        logger.info("[Users] Created %s (%s)", user.username, user.id)
        return user

    def search(self, query: str) -> List[UserRecord]:
        """Users whose username, user code or name contains ``query``."""
        if not query:
            return []
        needle = query.lower()
        with self._lock:
            hits = [
                user for user in self.users.values()
                if needle in user.username.lower()
                or needle in user.userCode.lower()
                or needle in user.name.lower()
            ]
        return hits[:MAX_SEARCH_RESULTS]

    def delete(self, user_id: str) -> bool:
        with self._lock:
            removed = self.users.pop(user_id, None)
        if removed:
            logger.info("[Users] Deleted %s", user_id)
        return removed is not None
