"""
Interfaces of the external collaborators: identity, credit ledger, blob store.
Implementations report is_available(); callers check it before use.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    email: str | None = None


class IdentityProvider(ABC):
    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    async def get_user(self, token: str) -> AuthenticatedUser | None:
        """Resolve a bearer token; None when the token is invalid."""
        pass


class CreditLedger(ABC):
    """Atomic balance primitives. Concurrency safety is the ledger's job, not the caller's."""

    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    async def decrement(self, user_id: str, amount: int) -> bool:
        """Atomic compare-and-subtract. False when the balance is insufficient."""
        pass

    @abstractmethod
    async def increment(self, user_id: str, amount: int) -> None:
        pass


class BlobStore(ABC):
    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    async def upload(self, path: str, content: bytes, content_type: str) -> None:
        pass

    @abstractmethod
    def public_url(self, path: str) -> str:
        pass
