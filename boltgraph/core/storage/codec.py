"""
Hierarchy bundle codec.

Layout of an encoded hierarchy:

    MAGIC (4 bytes) | header length (uint32, big endian) | header JSON | body

The header indexes one zlib-compressed segment per node plus one for the
edge list, so a single node can be decoded from a ranged read.
"""

import struct
import zlib
from datetime import datetime

from pydantic import BaseModel, Field, TypeAdapter

from boltgraph.models.edge import Edge
from boltgraph.models.hierarchy import Hierarchy
from boltgraph.models.node import Node
from boltgraph.utils.exceptions import StorageError

MAGIC = b"BGH1"
PREFIX = struct.Struct(">4sI")

_edges_adapter = TypeAdapter(list[Edge])


class BundleHeader(BaseModel):
    """Index of an encoded hierarchy bundle. Offsets are relative to the body."""

    document_id: str
    revision_id: str
    parent_revision_id: str | None = None
    created_at: datetime
    edges: tuple[int, int]
    nodes: dict[str, tuple[int, int]] = Field(default_factory=dict)

    def node_range(self, node_id: str, body_offset: int) -> tuple[int, int] | None:
        """Absolute (offset, length) of a node segment."""
        entry = self.nodes.get(node_id)
        if entry is None:
            return None
        return body_offset + entry[0], entry[1]


class HierarchyCodec:
    """Encodes and decodes hierarchy bundles."""

    def __init__(self, compression_level: int = 6):
        self.compression_level = compression_level

    def encode(self, hierarchy: Hierarchy) -> bytes:
        body = bytearray()
        nodes = {}
        for node_id in sorted(hierarchy.nodes):
            segment = zlib.compress(
                hierarchy.nodes[node_id].model_dump_json().encode("utf-8"), self.compression_level
            )
            nodes[node_id] = (len(body), len(segment))
            body.extend(segment)

        edges_segment = zlib.compress(
            _edges_adapter.dump_json(hierarchy.edges), self.compression_level
        )
        edges = (len(body), len(edges_segment))
        body.extend(edges_segment)

        header = BundleHeader(
            document_id=hierarchy.document_id,
            revision_id=hierarchy.revision_id,
            parent_revision_id=hierarchy.parent_revision_id,
            created_at=hierarchy.created_at,
            edges=edges,
            nodes=nodes,
        ).model_dump_json().encode("utf-8")

        return PREFIX.pack(MAGIC, len(header)) + header + bytes(body)

    def decode(self, data: bytes) -> Hierarchy:
        """
        Decode a full bundle.

        Raises:
            StorageError: If the bundle is truncated or corrupt
        """
        header, body_offset = self.decode_header(data)
        hierarchy = Hierarchy(
            revision_id=header.revision_id,
            document_id=header.document_id,
            parent_revision_id=header.parent_revision_id,
            created_at=header.created_at,
        )
        for node_id in header.nodes:
            offset, length = header.node_range(node_id, body_offset)
            hierarchy.add_node(self.decode_node(data[offset : offset + length]))

        edge_offset, edge_length = header.edges
        start = body_offset + edge_offset
        hierarchy.adopt_edges(
            _edges_adapter.validate_json(self._inflate(data[start : start + edge_length]))
        )
        return hierarchy

    def header_length(self, prefix: bytes) -> int:
        """
        Length of the header JSON from the first PREFIX.size bytes.

        Raises:
            StorageError: If the magic number does not match
        """
        if len(prefix) < PREFIX.size:
            raise StorageError("Hierarchy bundle is truncated")
        magic, length = PREFIX.unpack(prefix[: PREFIX.size])
        if magic != MAGIC:
            raise StorageError("Not a hierarchy bundle", context={"magic": magic.hex()})
        return length

    def decode_header(self, data: bytes) -> tuple[BundleHeader, int]:
        """
        Returns:
            (header, absolute offset of the body)
        """
        length = self.header_length(data)
        end = PREFIX.size + length
        if len(data) < end:
            raise StorageError("Hierarchy bundle header is truncated")
        return BundleHeader.model_validate_json(data[PREFIX.size : end]), end

    def decode_node(self, segment: bytes) -> Node:
        return Node.model_validate_json(self._inflate(segment))

    def _inflate(self, segment: bytes) -> bytes:
        try:
            return zlib.decompress(segment)
        except zlib.error as e:
            raise StorageError(f"Corrupt bundle segment: {e}") from e
