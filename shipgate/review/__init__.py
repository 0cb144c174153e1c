"""Reviewer request preparation and external review for shipgate."""

from .external import ExternalReviewRunner, parse_external_output, parse_text_findings
from .reviewer_adapter import (
    ReviewContext,
    ReviewerOutput,
    SpecDocument,
    build_review_prompt,
    detect_tech_stack,
    load_review_context,
    parse_reviewer_output,
    truncate_diff,
)

__all__ = [
    "ExternalReviewRunner",
    "ReviewContext",
    "ReviewerOutput",
    "SpecDocument",
    "build_review_prompt",
    "detect_tech_stack",
    "load_review_context",
    "parse_external_output",
    "parse_reviewer_output",
    "parse_text_findings",
    "truncate_diff",
]
