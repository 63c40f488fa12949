"""
Revision storage on top of a blob store.

Key layout:
- hierarchy/{document_id}/{revision_id}  encoded hierarchy bundle
- document/{document_id}/{revision_id}   source document snapshot (JSON)
- revlog/{document_id}                    committed revision IDs, oldest first
- head/{document_id}                      head pointer (JSON)

A revision becomes visible only when the head pointer is rewritten, which
is a single-key store. Bundles written before a failed commit are never
referenced by a head pointer.
"""

import json
from datetime import datetime

from boltgraph.core.storage.base import BlobStore
from boltgraph.core.storage.codec import PREFIX, HierarchyCodec
from boltgraph.models.document import Document
from boltgraph.models.hierarchy import Hierarchy
from boltgraph.models.node import Node
from boltgraph.utils.exceptions import NotFoundError, StorageError
from boltgraph.utils.logger import get_logger

logger = get_logger(__name__)


class StorageManager:
    """Saves, commits and loads hierarchy revisions."""

    def __init__(self, store: BlobStore, codec: HierarchyCodec | None = None):
        self.store = store
        self.codec = codec or HierarchyCodec()

    async def initialize(self) -> None:
        await self.store.initialize()

    async def close(self) -> None:
        await self.store.close()

    # ═══════════════════════════════════════════════════════════
    # KEYS
    # ═══════════════════════════════════════════════════════════

    @staticmethod
    def hierarchy_key(document_id: str, revision_id: str) -> str:
        return f"hierarchy/{document_id}/{revision_id}"

    @staticmethod
    def document_key(document_id: str, revision_id: str) -> str:
        return f"document/{document_id}/{revision_id}"

    @staticmethod
    def head_key(document_id: str) -> str:
        return f"head/{document_id}"

    @staticmethod
    def revlog_key(document_id: str) -> str:
        return f"revlog/{document_id}"

    # ═══════════════════════════════════════════════════════════
    # WRITES
    # ═══════════════════════════════════════════════════════════

    async def save_revision(self, hierarchy: Hierarchy, document: Document) -> None:
        """Write a revision bundle and its source snapshot. Does not move the head."""
        await self.store.store(
            self.hierarchy_key(hierarchy.document_id, hierarchy.revision_id),
            self.codec.encode(hierarchy),
        )
        await self.store.store(
            self.document_key(hierarchy.document_id, hierarchy.revision_id),
            document.model_dump_json().encode("utf-8"),
        )

    async def set_head(self, document_id: str, revision_id: str) -> None:
        pointer = {"revision_id": revision_id, "updated_at": datetime.now().isoformat()}
        await self.store.store(self.head_key(document_id), json.dumps(pointer).encode("utf-8"))

    async def commit(self, hierarchy: Hierarchy, document: Document) -> None:
        """
        Persist a revision and make it the head.

        Args:
            hierarchy: Validated revision
            document: Source document the revision was built from

        Raises:
            StorageError: If any write fails; the previous head stays visible
        """
        await self.save_revision(hierarchy, document)

        document_id = hierarchy.document_id
        log_key = self.revlog_key(document_id)
        previous_log = await self.store.retrieve(log_key)
        revisions = json.loads(previous_log) if previous_log else []
        if hierarchy.revision_id not in revisions:
            revisions.append(hierarchy.revision_id)
        await self.store.store(log_key, json.dumps(revisions).encode("utf-8"))

        try:
            await self.set_head(document_id, hierarchy.revision_id)
        except StorageError:
            # The log only lists revisions that became head
            if previous_log is None:
                await self.store.delete(log_key)
            else:
                await self.store.store(log_key, previous_log)
            raise

        logger.info(
            "Committed revision",
            extra={
                "document_id": hierarchy.document_id,
                "revision_id": hierarchy.revision_id,
                "parent_revision_id": hierarchy.parent_revision_id,
                "nodes": len(hierarchy.nodes),
                "edges": len(hierarchy.edges),
            },
        )

    # ═══════════════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════════════

    async def head_revision(self, document_id: str) -> str | None:
        data = await self.store.retrieve(self.head_key(document_id))
        if data is None:
            return None
        return json.loads(data)["revision_id"]

    async def list_revisions(self, document_id: str) -> list[str]:
        data = await self.store.retrieve(self.revlog_key(document_id))
        return json.loads(data) if data else []

    async def list_documents(self) -> list[str]:
        return [key.split("/", 1)[1] for key in await self.store.list_keys("head/")]

    async def _resolve(self, document_id: str, revision_id: str | None) -> str:
        if revision_id is not None:
            return revision_id
        head = await self.head_revision(document_id)
        if head is None:
            raise NotFoundError(
                f"Document {document_id} has no committed revision",
                context={"document_id": document_id},
            )
        return head

    async def load_hierarchy(self, document_id: str, revision_id: str | None = None) -> Hierarchy:
        """
        Load a full revision, the head by default.

        Raises:
            NotFoundError: If the document or revision does not exist
        """
        revision_id = await self._resolve(document_id, revision_id)
        data = await self.store.retrieve(self.hierarchy_key(document_id, revision_id))
        if data is None:
            raise NotFoundError(
                f"Revision {revision_id} of {document_id} not found",
                context={"document_id": document_id, "revision_id": revision_id},
            )
        return self.codec.decode(data)

    async def load_document(self, document_id: str, revision_id: str | None = None) -> Document:
        revision_id = await self._resolve(document_id, revision_id)
        data = await self.store.retrieve(self.document_key(document_id, revision_id))
        if data is None:
            raise NotFoundError(
                f"Document snapshot {revision_id} of {document_id} not found",
                context={"document_id": document_id, "revision_id": revision_id},
            )
        return Document.model_validate_json(data)

    async def load_node(
        self, document_id: str, node_id: str, revision_id: str | None = None
    ) -> Node:
        """
        Load one node record without decoding the whole revision.

        Uses ranged reads when the blob store supports them.

        Raises:
            NotFoundError: If the revision or node does not exist
        """
        revision_id = await self._resolve(document_id, revision_id)
        key = self.hierarchy_key(document_id, revision_id)

        if self.store.supports_partial_retrieval():
            prefix = await self.store.retrieve_partial(key, 0, PREFIX.size)
            if not prefix:
                raise NotFoundError(
                    f"Revision {revision_id} of {document_id} not found",
                    context={"document_id": document_id, "revision_id": revision_id},
                )
            header_length = self.codec.header_length(prefix)
            head = await self.store.retrieve_partial(key, 0, PREFIX.size + header_length)
            header, body_offset = self.codec.decode_header(head)
            location = header.node_range(node_id, body_offset)
            if location is None:
                raise NotFoundError(
                    f"Node {node_id} not found in revision {revision_id}",
                    context={"node_id": node_id, "revision_id": revision_id},
                )
            segment = await self.store.retrieve_partial(key, *location)
        else:
            data = await self.store.retrieve(key)
            if data is None:
                raise NotFoundError(
                    f"Revision {revision_id} of {document_id} not found",
                    context={"document_id": document_id, "revision_id": revision_id},
                )
            header, body_offset = self.codec.decode_header(data)
            location = header.node_range(node_id, body_offset)
            if location is None:
                raise NotFoundError(
                    f"Node {node_id} not found in revision {revision_id}",
                    context={"node_id": node_id, "revision_id": revision_id},
                )
            offset, length = location
            segment = data[offset : offset + length]

        if not segment:
            raise StorageError(
                "Empty node segment", context={"node_id": node_id, "revision_id": revision_id}
            )
        return self.codec.decode_node(segment)
