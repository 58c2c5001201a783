"""
Base class for object store adapters.
The gateway and the garbage collector only talk to this interface.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from quickdrop.core.objects import StoredObject


@dataclass
class ObjectListing:
    """One page of a provider listing."""
    objects: List[StoredObject] = field(default_factory=list)
    cursor: Optional[str] = None  # None once the listing is exhausted
    failed: int = 0  # keys listed but whose metadata could not be read


class ObjectStore(ABC):
    """
    Abstract object store.

    Implementations must raise UpstreamError for provider failures and
    return None (not raise) for missing keys, so that "missing" and
    "expired and already deleted" look the same to callers.
    """

    @abstractmethod
    def get_object(self, key: str) -> Optional[StoredObject]:
        """
        Fetch an object with its body.

        Returns:
            StoredObject with body set, or None if the key does not exist

        Raises:
            UpstreamError: If the provider call fails
        """
        pass

    @abstractmethod
    def head_object(self, key: str) -> Optional[StoredObject]:
        """Fetch object metadata without the body, or None if missing."""
        pass

    @abstractmethod
    def list_objects(self, cursor: Optional[str] = None, limit: int = 1000) -> ObjectListing:
        """
        List one page of objects, including their custom metadata.

        Args:
            cursor: Cursor returned by the previous page, None for the first page
            limit: Maximum objects per page

        Raises:
            UpstreamError: If the provider call fails
        """
        pass

    @abstractmethod
    def delete_object(self, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error."""
        pass

    @abstractmethod
    def check_health(self) -> bool:
        """Return True if the backing store is reachable."""
        pass
