"""
ID generation utilities for BoltGraph.

Provides consistent ID generation for all entity types:
- Revisions: rev_xxx
- Sections: sec_xxx
- Paragraphs: par_xxx
- Update jobs: upd_xxx
- Concepts: cpt_xxx (deterministic per document and term)
"""

import hashlib
from uuid import uuid4


def generate_revision_id() -> str:
    """
    Generate unique Revision ID.

    Returns:
        ID in format "rev_xxx" where xxx is 12 hex characters
    """
    return f"rev_{uuid4().hex[:12]}"


def generate_section_id() -> str:
    """
    Generate unique Section node ID.

    Returns:
        ID in format "sec_xxx" where xxx is 12 hex characters
    """
    return f"sec_{uuid4().hex[:12]}"


def generate_paragraph_id() -> str:
    """
    Generate unique Paragraph node ID.

    Returns:
        ID in format "par_xxx" where xxx is 12 hex characters
    """
    return f"par_{uuid4().hex[:12]}"


def generate_update_id() -> str:
    """
    Generate unique update job ID.

    Returns:
        ID in format "upd_xxx" where xxx is 12 hex characters
    """
    return f"upd_{uuid4().hex[:12]}"


def generate_concept_id(document_id: str, term: str) -> str:
    """
    Generate Concept node ID.

    Concept IDs are stable across revisions so a term keeps its node
    while it stays mentioned in the document.

    Args:
        document_id: Owning document ID
        term: Normalized concept term

    Returns:
        ID in format "cpt_xxx" where xxx is 12 hex characters
    """
    digest = hashlib.sha1(f"{document_id}:{term}".encode()).hexdigest()
    return f"cpt_{digest[:12]}"
