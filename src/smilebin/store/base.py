"""Base interface for annotation stores."""

from abc import ABC, abstractmethod

from ..models import Annotation, AnnotationAddress


class AnnotationStore(ABC):
    """
    Where annotations and their addresses are kept.

    Implementations return an empty list for "nothing found" and raise
    TransportFailure when the store itself cannot be reached.
    """

    @abstractmethod
    async def fetch(self, repo_key: str, fingerprints: list[str]) -> list[Annotation]:
        """
        Get annotations whose first address matches one of `fingerprints`.

        Returned annotations carry their addresses.
        """

    @abstractmethod
    async def create(self, annotation: Annotation) -> str:
        """Store an annotation (without addresses) and return its id."""

    @abstractmethod
    async def create_address(self, address: AnnotationAddress) -> str:
        """Store one address of an already stored annotation and return its id."""

    @abstractmethod
    async def delete(self, annotation_id: str) -> bool:
        """Delete an annotation and its addresses. False if it did not exist."""

    @abstractmethod
    async def lookup_or_create_repo(self, repo_key: str) -> str:
        """Get the id of the repo identified by `repo_key`, creating it if needed."""

    async def aclose(self) -> None:
        """Release any connections held by the store."""
