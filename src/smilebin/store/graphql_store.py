"""Annotation store reached over GraphQL."""

import logging
from typing import Any

import httpx

from ..cooldown import NetworkCooldown
from ..errors import TransportFailure
from ..models import Annotation, AnnotationAddress
from .base import AnnotationStore

LOG = logging.getLogger(__name__)

FETCH_COMMENTS = """
query CommentsForFile($repoUrl: String!, $hashes: [String]!) {
  fetchComments(repoUrl: $repoUrl, hashes: $hashes) {
    nodes {
      id
      repoId
      userId
      comment
      emoticon
      startLineNumber
      endLineNumber
      codeSnippet
      addresses {
        id
        sequence
        commitHash
        fileChecksum
        startLineNumber
        endLineNumber
      }
    }
  }
}
"""

CREATE_COMMENT = """
mutation CreateComment($input: CreateCommentInput!) {
  createComment(input: $input) {
    comment { id }
  }
}
"""

CREATE_COMMENT_ADDRESS = """
mutation CreateCommentAddress($input: CreateCommentAddressInput!) {
  createCommentAddress(input: $input) {
    commentAddress { id }
  }
}
"""

DELETE_COMMENT = """
mutation DeleteComment($id: ID!) {
  deleteComment(id: $id) {
    deleted
  }
}
"""

FIND_OR_CREATE_REPO = """
mutation FindOrCreateRepo($url: String!) {
  findOrCreateRepo(url: $url) {
    repo { id }
  }
}
"""


class GraphQLStore(AnnotationStore):
    """Talks to the smilebin backend's /graphql endpoint."""

    def __init__(
        self,
        backend_url: str,
        token: str | None = None,
        cooldown: NetworkCooldown | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.endpoint = backend_url.rstrip("/") + "/graphql"
        self.token = token
        self.cooldown = cooldown
        self._transport = transport
        self._session: httpx.AsyncClient | None = None

    @property
    def session(self) -> httpx.AsyncClient:
        """Get or create the HTTP session."""
        if self._session is None or self._session.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._session = httpx.AsyncClient(
                timeout=httpx.Timeout(connect=10.0, read=30.0, write=10.0, pool=5.0),
                headers=headers,
                transport=self._transport,
            )
        return self._session

    async def aclose(self) -> None:
        if self._session is not None and not self._session.is_closed:
            await self._session.aclose()

    async def _execute(self, document: str, variables: dict[str, Any]) -> dict[str, Any]:
        """POST one GraphQL document and return its `data` member."""
        try:
            response = await self.session.post(
                self.endpoint, json={"query": document, "variables": variables}
            )
        except httpx.HTTPError as exc:
            self._network_failed()
            raise TransportFailure(f"Annotation store unreachable: {exc}") from exc

        if response.status_code >= 500:
            self._network_failed()
            raise TransportFailure(
                f"Annotation store error: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise TransportFailure(
                f"Annotation store rejected request: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportFailure("Annotation store returned invalid JSON") from exc

        errors = payload.get("errors")
        if errors:
            messages = "; ".join(str(e.get("message", e)) for e in errors)
            raise TransportFailure(f"Annotation store error: {messages}")

        if self.cooldown is not None:
            self.cooldown.reset()
        return payload.get("data") or {}

    def _network_failed(self) -> None:
        if self.cooldown is not None:
            self.cooldown.record_failure()

    async def fetch(self, repo_key: str, fingerprints: list[str]) -> list[Annotation]:
        if not fingerprints:
            return []
        data = await self._execute(
            FETCH_COMMENTS, {"repoUrl": repo_key, "hashes": fingerprints}
        )
        result = data.get("fetchComments")
        if not result:
            return []
        try:
            return [_annotation_from_node(node) for node in result.get("nodes") or []]
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise TransportFailure(
                f"Annotation store returned a malformed comment: {exc!r}"
            ) from exc

    async def create(self, annotation: Annotation) -> str:
        data = await self._execute(
            CREATE_COMMENT,
            {
                "input": {
                    "repoId": annotation.repo_id,
                    "userId": annotation.user_id,
                    "comment": annotation.text,
                    "emoticon": annotation.emoticon,
                    "startLineNumber": annotation.start_line_number,
                    "endLineNumber": annotation.end_line_number,
                    "codeSnippet": annotation.code_snippet,
                }
            },
        )
        return _created_id(data, "createComment", "comment")

    async def create_address(self, address: AnnotationAddress) -> str:
        data = await self._execute(
            CREATE_COMMENT_ADDRESS,
            {
                "input": {
                    "commentId": address.annotation_id,
                    "sequence": address.sequence,
                    "commitHash": address.revision,
                    "fileChecksum": address.file_checksum,
                    "startLineNumber": address.start_line_number,
                    "endLineNumber": address.end_line_number,
                }
            },
        )
        return _created_id(data, "createCommentAddress", "commentAddress")

    async def delete(self, annotation_id: str) -> bool:
        data = await self._execute(DELETE_COMMENT, {"id": annotation_id})
        result = data.get("deleteComment")
        return bool(result and result.get("deleted"))

    async def lookup_or_create_repo(self, repo_key: str) -> str:
        data = await self._execute(FIND_OR_CREATE_REPO, {"url": repo_key})
        return _created_id(data, "findOrCreateRepo", "repo")


def _created_id(data: dict[str, Any], field: str, entity: str) -> str:
    try:
        return str(data[field][entity]["id"])
    except (KeyError, TypeError):
        raise TransportFailure(f"Annotation store response is missing {field}.{entity}.id")


def _annotation_from_node(node: dict[str, Any]) -> Annotation:
    annotation_id = str(node["id"])
    addresses = [
        AnnotationAddress(
            id=str(a["id"]) if a.get("id") is not None else None,
            annotation_id=annotation_id,
            sequence=int(a["sequence"]),
            revision=a["commitHash"],
            file_checksum=a["fileChecksum"],
            start_line_number=int(a["startLineNumber"]),
            end_line_number=int(a["endLineNumber"]),
        )
        for a in node.get("addresses") or []
    ]
    return Annotation(
        id=annotation_id,
        repo_id=node.get("repoId"),
        user_id=node.get("userId"),
        text=node.get("comment") or "",
        emoticon=node.get("emoticon") or "smile",
        start_line_number=int(node["startLineNumber"]),
        end_line_number=int(node["endLineNumber"]),
        code_snippet=node.get("codeSnippet") or "",
        addresses=addresses,
    )
