"""Fixtures for service tests.

Each service is exercised against a hierarchy committed by a real
in-memory engine, so node IDs and edges match what updates see.
"""

import pytest

from boltgraph.models.document import Document
from boltgraph.models.hierarchy import Hierarchy
from boltgraph.models.node import Granularity

# The first Section One paragraph with its last word swapped
FIRST_PARAGRAPH = "The harbour crane lifts steel containers onto waiting cargo ships every morning."
THIRD_PARAGRAPH = (
    "Heavy fog sometimes delays the cargo schedule and the crane stays idle for hours.\n\n"
)
NEW_SECTION = "\n# Section Three\n\nMountain goats climb granite ridges above the frozen lake.\n"


def revise(document: Document, content: str) -> Document:
    return Document(document_id=document.document_id, content=content, metadata=document.metadata)


def concept_id(hierarchy: Hierarchy, term: str) -> str:
    for node in hierarchy.nodes_of_granularity(Granularity.CONCEPT):
        if node.feature_metadata["term"] == term:
            return node.id
    raise KeyError(term)


def section_ids(hierarchy: Hierarchy) -> list[str]:
    return hierarchy.children_of(hierarchy.document_id)


@pytest.fixture
async def committed(engine, document) -> Hierarchy:
    """Head hierarchy after ingesting the fixture document."""
    await engine.ingest(document)
    return await engine.get_hierarchy(document.document_id)


@pytest.fixture
def edited(document) -> Document:
    """Fixture document with one word of the first paragraph changed."""
    return revise(
        document,
        document.content.replace(FIRST_PARAGRAPH, FIRST_PARAGRAPH.replace("morning", "evening")),
    )


@pytest.fixture
def trimmed(document) -> Document:
    """Fixture document without the third paragraph of Section One."""
    return revise(document, document.content.replace(THIRD_PARAGRAPH, ""))


@pytest.fixture
def extended(document) -> Document:
    """Fixture document with a third, unrelated section appended."""
    return revise(document, document.content + NEW_SECTION)
