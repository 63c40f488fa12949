"""
Validator - checks a reconciled revision before it may be committed.

Checks:
1. Every edge endpoint exists and is live (fatal)
2. Nodes with no impact are identical to their previous record apart
   from revision_id (fatal)
3. Every live combined vector is unit length (fatal)
4. No Concept node is left without a mention (fatal)
5. An unchanged document keeps its Document vector within the regression
   floor (warning only)
"""

from boltgraph.core.vectors import cosine_similarity, is_unit
from boltgraph.models.change import ChangeSet, ImpactLevel, ImpactMap, TextImpact
from boltgraph.models.hierarchy import Hierarchy
from boltgraph.models.node import Granularity
from boltgraph.models.report import ValidationCheck, ValidationIssue, ValidationReport
from boltgraph.utils.exceptions import ValidationFailedError
from boltgraph.utils.logger import get_logger

logger = get_logger(__name__)


class Validator:
    """Runs revision checks and produces a report."""

    def __init__(self, unit_norm_epsilon: float = 1e-6, regression_floor: float = 0.95):
        self.unit_norm_epsilon = unit_norm_epsilon
        self.regression_floor = regression_floor

    def validate(
        self,
        reconciled: Hierarchy,
        previous: Hierarchy | None,
        change_set: ChangeSet | None = None,
        impact_map: ImpactMap | None = None,
        raise_on_error: bool = True,
    ) -> ValidationReport:
        """
        Validate a revision.

        Args:
            reconciled: Revision to validate
            previous: Previous committed revision (None for a first ingest)
            change_set: Changes the revision was built from
            impact_map: Impact levels used by the updater
            raise_on_error: Raise when a fatal check fails

        Returns:
            Validation report

        Raises:
            ValidationFailedError: If a fatal check fails and raise_on_error
        """
        report = ValidationReport(
            revision_id=reconciled.revision_id, document_id=reconciled.document_id
        )

        self._check_edges(reconciled, report)
        if previous is not None and impact_map is not None:
            self._check_preservation(reconciled, previous, change_set, impact_map, report)
        self._check_unit_norm(reconciled, report)
        self._check_orphan_concepts(reconciled, report)
        if previous is not None and change_set is not None:
            self._check_regression(reconciled, previous, change_set, report)

        for warning in report.warnings:
            logger.warning(
                f"Validation warning on {reconciled.revision_id}: {warning.message}",
                extra={"check": warning.check.value, "node_id": warning.node_id},
            )

        if report.passed:
            logger.debug(
                f"Validation {report.summary()}",
                extra={"revision_id": reconciled.revision_id},
            )
        else:
            logger.error(
                f"Validation {report.summary()}",
                extra={
                    "revision_id": reconciled.revision_id,
                    "checks": sorted({e.check.value for e in report.errors}),
                },
            )
            if raise_on_error:
                raise ValidationFailedError(
                    f"Revision {reconciled.revision_id} failed validation: {report.summary()}",
                    report=report,
                    context={"revision_id": reconciled.revision_id},
                )
        return report

    def _check_edges(self, hierarchy: Hierarchy, report: ValidationReport) -> None:
        for edge in hierarchy.edges:
            for endpoint in (edge.from_id, edge.to_id):
                if not hierarchy.is_live(endpoint):
                    report.errors.append(
                        ValidationIssue(
                            check=ValidationCheck.EDGE_ENDPOINTS,
                            message=f"{edge.type.value} edge references dead node {endpoint}",
                            node_id=endpoint,
                            details={"from_id": edge.from_id, "to_id": edge.to_id},
                        )
                    )

    def _check_preservation(
        self,
        hierarchy: Hierarchy,
        previous: Hierarchy,
        change_set: ChangeSet | None,
        impact_map: ImpactMap,
        report: ValidationReport,
    ) -> None:
        for node in previous.nodes.values():
            if node.tombstoned or impact_map.level(node.id) != ImpactLevel.NONE:
                continue
            if change_set is not None and (
                change_set.text_impacts.get(node.id) == TextImpact.REMOVED
            ):
                continue
            current = hierarchy.get_node(node.id)
            if current is None or current.fingerprint() != node.fingerprint():
                report.errors.append(
                    ValidationIssue(
                        check=ValidationCheck.PRESERVATION,
                        message=f"Unaffected node {node.id} changed",
                        node_id=node.id,
                    )
                )

    def _check_unit_norm(self, hierarchy: Hierarchy, report: ValidationReport) -> None:
        for node in hierarchy.live_nodes():
            if not is_unit(node.combined_vector, self.unit_norm_epsilon):
                report.errors.append(
                    ValidationIssue(
                        check=ValidationCheck.UNIT_NORM,
                        message=f"Combined vector of {node.id} is not unit length",
                        node_id=node.id,
                    )
                )

    def _check_orphan_concepts(self, hierarchy: Hierarchy, report: ValidationReport) -> None:
        for concept in hierarchy.nodes_of_granularity(Granularity.CONCEPT):
            if not hierarchy.mentions_of(concept.id):
                report.errors.append(
                    ValidationIssue(
                        check=ValidationCheck.ORPHAN_CONCEPTS,
                        message=f"Concept {concept.id} has no mentions",
                        node_id=concept.id,
                    )
                )

    def _check_regression(
        self,
        hierarchy: Hierarchy,
        previous: Hierarchy,
        change_set: ChangeSet,
        report: ValidationReport,
    ) -> None:
        if change_set.document_impact != TextImpact.UNCHANGED:
            return
        current = hierarchy.document_node()
        before = previous.document_node()
        if current is None or before is None:
            return
        similarity = cosine_similarity(current.combined_vector, before.combined_vector)
        if similarity < self.regression_floor:
            report.warnings.append(
                ValidationIssue(
                    check=ValidationCheck.REGRESSION_FLOOR,
                    message=(
                        f"Document vector moved on unchanged content "
                        f"(cosine {similarity:.4f} < {self.regression_floor})"
                    ),
                    node_id=current.id,
                    fatal=False,
                    details={"similarity": similarity},
                )
            )
