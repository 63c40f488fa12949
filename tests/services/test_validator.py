"""
Tests for Validator.

Tests cover:
1. Passing first and incremental revisions
2. Each fatal check in isolation
3. Regression floor as a warning
4. raise_on_error switch
"""

import pytest

from boltgraph.core.vectors import normalize
from boltgraph.models.change import ChangeSet, ImpactMap, TextImpact
from boltgraph.models.edge import Edge, EdgeType
from boltgraph.models.hierarchy import Hierarchy
from boltgraph.models.report import ValidationCheck
from boltgraph.services.validator import Validator
from boltgraph.utils.exceptions import InvalidEdgeError, ValidationFailedError
from tests.services.conftest import concept_id, section_ids


def carried(committed: Hierarchy, revision_id: str = "rev_next") -> Hierarchy:
    """Copy of a hierarchy with every node carried into a new revision."""
    return Hierarchy(
        revision_id=revision_id,
        document_id=committed.document_id,
        parent_revision_id=committed.revision_id,
        nodes={
            node_id: node.with_revision(revision_id) for node_id, node in committed.nodes.items()
        },
        edges=list(committed.edges),
    )


def moved(vector: list[float]) -> list[float]:
    """Unit vector pointing well away from vector."""
    return list(normalize([x + 1.0 if i % 2 else 0.0 for i, x in enumerate(vector)]))


def checks(report):
    return {issue.check for issue in report.errors}


@pytest.mark.integration
@pytest.mark.asyncio
class TestValidator:
    """Tests for revision checks."""

    async def test_first_revision_passes(self, committed):
        report = Validator().validate(committed, None)

        assert report.passed
        assert report.warnings == []
        assert report.revision_id == committed.revision_id

    async def test_carried_revision_passes(self, committed):
        change_set = ChangeSet(document_id=committed.document_id)
        report = Validator().validate(
            carried(committed), committed, change_set=change_set, impact_map=ImpactMap()
        )
        assert report.passed

    async def test_dead_edge_endpoint(self, committed):
        hierarchy = carried(committed)
        paragraph = hierarchy.children_of(section_ids(hierarchy)[1])[0]
        hierarchy.add_node(hierarchy.nodes[paragraph].tombstone(hierarchy.revision_id))

        report = Validator().validate(hierarchy, None, raise_on_error=False)
        assert checks(report) == {ValidationCheck.EDGE_ENDPOINTS}
        assert report.errors[0].node_id == paragraph

    async def test_preservation(self, committed):
        hierarchy = carried(committed)
        section_two = section_ids(hierarchy)[1]
        node = hierarchy.nodes[section_two]
        hierarchy.add_node(node.model_copy(update={"feature_metadata": {"title": "changed"}}))

        report = Validator().validate(
            hierarchy, committed, impact_map=ImpactMap(), raise_on_error=False
        )
        assert checks(report) == {ValidationCheck.PRESERVATION}
        assert report.errors[0].node_id == section_two

    async def test_removed_nodes_not_checked_for_preservation(self, committed):
        hierarchy = carried(committed)
        section_two = section_ids(hierarchy)[1]
        node = hierarchy.nodes[section_two]
        hierarchy.add_node(node.model_copy(update={"feature_metadata": {}}))
        change_set = ChangeSet(
            document_id=committed.document_id,
            text_impacts={section_two: TextImpact.REMOVED},
        )

        report = Validator().validate(
            hierarchy, committed, change_set=change_set, impact_map=ImpactMap()
        )
        assert report.passed

    async def test_unit_norm(self, committed):
        hierarchy = carried(committed)
        node = hierarchy.document_node()
        doubled = [2 * x for x in node.combined_vector]
        hierarchy.add_node(node.model_copy(update={"combined_vector": doubled}))

        with pytest.raises(ValidationFailedError) as exc_info:
            Validator().validate(hierarchy, None)

        assert checks(exc_info.value.report) == {ValidationCheck.UNIT_NORM}
        assert exc_info.value.context["revision_id"] == hierarchy.revision_id

    async def test_orphan_concept(self, committed):
        hierarchy = carried(committed)
        cargo = concept_id(hierarchy, "cargo")
        hierarchy.remove_edges(lambda e: e.type == EdgeType.APPEARS and e.to_id == cargo)

        report = Validator().validate(hierarchy, None, raise_on_error=False)
        assert checks(report) == {ValidationCheck.ORPHAN_CONCEPTS}

    async def test_regression_floor_warns(self, committed):
        hierarchy = carried(committed)
        root = hierarchy.document_node()
        hierarchy.add_node(root.model_copy(update={"combined_vector": moved(root.combined_vector)}))
        change_set = ChangeSet(document_id=committed.document_id)

        validator = Validator(regression_floor=0.999)
        report = validator.validate(hierarchy, committed, change_set=change_set)

        assert report.passed
        assert [w.check for w in report.warnings] == [ValidationCheck.REGRESSION_FLOOR]
        assert report.warnings[0].fatal is False

    async def test_regression_skipped_for_changed_document(self, committed):
        hierarchy = carried(committed)
        root = hierarchy.document_node()
        hierarchy.add_node(root.model_copy(update={"combined_vector": moved(root.combined_vector)}))
        change_set = ChangeSet(
            document_id=committed.document_id, document_impact=TextImpact.MODIFIED
        )

        validator = Validator(regression_floor=0.999)
        report = validator.validate(hierarchy, committed, change_set=change_set)
        assert report.warnings == []

    async def test_sibling_across_parents_rejected(self, committed):
        hierarchy = carried(committed)
        sections = section_ids(hierarchy)
        paragraph = hierarchy.children_of(sections[0])[0]

        with pytest.raises(InvalidEdgeError):
            hierarchy.add_edge(Edge(from_id=sections[1], to_id=paragraph, type=EdgeType.SIBLING))
