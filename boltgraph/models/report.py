"""
Validation and update outcome models.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ValidationCheck(str, Enum):
    """Checks performed before a revision is committed."""

    EDGE_ENDPOINTS = "edge_endpoints"
    PRESERVATION = "preservation"
    UNIT_NORM = "unit_norm"
    ORPHAN_CONCEPTS = "orphan_concepts"
    REGRESSION_FLOOR = "regression_floor"


class ValidationIssue(BaseModel):
    """A single finding of the validator."""

    check: ValidationCheck
    message: str
    node_id: str | None = None
    fatal: bool = True
    details: dict[str, Any] = Field(default_factory=dict)


class ValidationReport(BaseModel):
    """Outcome of validating a candidate revision."""

    revision_id: str
    document_id: str
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    checked_at: datetime = Field(default_factory=datetime.now)

    @property
    def passed(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        status = "passed" if self.passed else "failed"
        return f"{status}: {len(self.errors)} errors, {len(self.warnings)} warnings"


class UpdateResult(BaseModel):
    """What an update committed."""

    update_id: str
    document_id: str
    revision_id: str
    parent_revision_id: str | None = None
    report: ValidationReport
    impact_counts: dict[str, int] = Field(default_factory=dict)
    regenerated: list[str] = Field(default_factory=list)
    preserved: list[str] = Field(default_factory=list)
    tombstoned: list[str] = Field(default_factory=list)
    full_regeneration: bool = False
    # Post-commit problems, such as a search index that missed the new revision
    warnings: list[str] = Field(default_factory=list)
    duration_ms: float = 0.0
