"""
Document source capability.

The source owns document content and revision history. BoltGraph reads
from it and may subscribe to new revisions.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from boltgraph.models.document import Document
from boltgraph.utils.exceptions import NotFoundError
from boltgraph.utils.id_generator import generate_revision_id
from boltgraph.utils.logger import get_logger

logger = get_logger(__name__)

RevisionListener = Callable[[Document], Awaitable[None]]


class DocumentSource(ABC):
    """Abstract base class for document sources."""

    @abstractmethod
    async def get_document(self, document_id: str, revision: str | None = None) -> Document:
        """
        Fetch a document revision, the latest by default.

        Raises:
            NotFoundError: If the document or revision is unknown
        """
        pass

    @abstractmethod
    async def list_revisions(self, document_id: str) -> list[str]:
        pass

    @abstractmethod
    def subscribe(self, listener: RevisionListener) -> None:
        """Call listener with every newly published revision."""
        pass


class InMemoryDocumentSource(DocumentSource):
    """
    In-process document source.

    publish() stores a new revision and awaits every subscriber in
    subscription order. A failing subscriber propagates its error to the
    publisher.
    """

    def __init__(self):
        self._revisions: dict[str, dict[str, Document]] = {}
        self._order: dict[str, list[str]] = {}
        self._listeners: list[RevisionListener] = []

    def subscribe(self, listener: RevisionListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: RevisionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def publish(self, document: Document) -> Document:
        """
        Store a new revision and notify subscribers.

        Returns:
            The stored document, with source_revision assigned when missing
        """
        if document.source_revision is None:
            document = document.model_copy(update={"source_revision": generate_revision_id()})

        self._revisions.setdefault(document.document_id, {})[document.source_revision] = document
        self._order.setdefault(document.document_id, []).append(document.source_revision)

        logger.debug(
            "Published document revision",
            extra={
                "document_id": document.document_id,
                "source_revision": document.source_revision,
                "listeners": len(self._listeners),
            },
        )
        for listener in list(self._listeners):
            await listener(document)
        return document

    async def get_document(self, document_id: str, revision: str | None = None) -> Document:
        revisions = self._revisions.get(document_id)
        if not revisions:
            raise NotFoundError(
                f"Document {document_id} not found", context={"document_id": document_id}
            )
        if revision is None:
            revision = self._order[document_id][-1]
        document = revisions.get(revision)
        if document is None:
            raise NotFoundError(
                f"Revision {revision} of {document_id} not found",
                context={"document_id": document_id, "revision": revision},
            )
        return document

    async def list_revisions(self, document_id: str) -> list[str]:
        return list(self._order.get(document_id, []))
