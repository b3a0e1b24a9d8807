"""In-process annotation store."""

import itertools
from dataclasses import replace

from ..models import Annotation, AnnotationAddress
from .base import AnnotationStore


class MemoryStore(AnnotationStore):
    """
    Keeps everything in dictionaries.

    Follows the same contract as the remote store: lookups go through the
    fingerprint of each annotation's first address and deleting an
    annotation removes its addresses.
    """

    def __init__(self):
        self.repos: dict[str, str] = {}
        self.annotations: dict[str, Annotation] = {}
        self.addresses: dict[str, AnnotationAddress] = {}
        self._ids = itertools.count(1)

    def _next_id(self) -> str:
        return str(next(self._ids))

    async def fetch(self, repo_key: str, fingerprints: list[str]) -> list[Annotation]:
        repo_id = self.repos.get(repo_key)
        if repo_id is None or not fingerprints:
            return []

        wanted = set(fingerprints)
        found = []
        for annotation in self.annotations.values():
            if annotation.repo_id != repo_id:
                continue
            addresses = sorted(
                (a for a in self.addresses.values() if a.annotation_id == annotation.id),
                key=lambda a: a.sequence,
            )
            if not addresses or addresses[0].fingerprint not in wanted:
                continue
            found.append(replace(annotation, addresses=addresses))
        return found

    async def create(self, annotation: Annotation) -> str:
        annotation_id = self._next_id()
        self.annotations[annotation_id] = replace(annotation, id=annotation_id, addresses=[])
        return annotation_id

    async def create_address(self, address: AnnotationAddress) -> str:
        if address.annotation_id not in self.annotations:
            raise KeyError(f"Unknown annotation: {address.annotation_id}")
        address_id = self._next_id()
        self.addresses[address_id] = replace(address, id=address_id)
        return address_id

    async def delete(self, annotation_id: str) -> bool:
        if self.annotations.pop(annotation_id, None) is None:
            return False
        # Addresses go with their annotation
        for address_id in [
            k for k, a in self.addresses.items() if a.annotation_id == annotation_id
        ]:
            del self.addresses[address_id]
        return True

    async def lookup_or_create_repo(self, repo_key: str) -> str:
        if repo_key not in self.repos:
            self.repos[repo_key] = self._next_id()
        return self.repos[repo_key]
