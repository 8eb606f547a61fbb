"""Read-only access to resident accounts.

User records are owned by the account service; the gateway only reads them to
match a caller's phone number to a verified resident.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from smartcare.errors import StoreUnavailable
from smartcare.store import USERS, DocumentStore

# Number of trailing digits compared when the stored format differs
PHONE_SUFFIX_DIGITS = 9


class User(BaseModel):
    """A registered resident."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    first_name: str = Field("", alias="firstName")
    last_name: str = Field("", alias="lastName")
    phone: str = ""
    community: str = ""
    unit_number: str = Field("", alias="unitNumber")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class CallerIdentity:
    """Who a session belongs to, as far as the gateway could tell."""

    phone: str = ""
    user: User | None = None

    @property
    def verified(self) -> bool:
        return self.user is not None

    @property
    def user_id(self) -> str | None:
        return self.user.id if self.user else None


class UserDirectory:
    """Looks up residents by id or phone number."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def get(self, user_id: str) -> User | None:
        try:
            record = await self._store.get(USERS, user_id)
        except StoreUnavailable as e:
            logger.warning(f"User lookup for {user_id} failed: {e}")
            return None
        return User.model_validate(record) if record else None

    async def find_by_phone(self, phone: str) -> User | None:
        """Match a phone number against registered users.

        Tries the number as given, then without the leading ``+``, then the
        last nine digits. Lookup failures are treated as "no match".
        """
        phone = (phone or "").strip()
        if not phone:
            return None

        try:
            for candidate in dict.fromkeys([phone, phone.lstrip("+")]):
                records = await self._store.find(USERS, "phone", candidate, limit=1)
                if records:
                    return User.model_validate(records[0])

            digits = "".join(ch for ch in phone if ch.isdigit())
            if len(digits) >= PHONE_SUFFIX_DIGITS:
                records = await self._store.find_suffix(
                    USERS, "phone", digits[-PHONE_SUFFIX_DIGITS:], limit=1
                )
                if records:
                    return User.model_validate(records[0])
        except StoreUnavailable as e:
            logger.warning(f"User lookup by phone {phone} failed: {e}")
            return None

        logger.debug(f"No registered user for phone {phone}")
        return None
