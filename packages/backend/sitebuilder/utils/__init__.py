from .html import (
    extract_html_document,
    extract_style_reference,
    inject_preview_metadata,
    insert_into_head,
)
from .rewrite import (
    canonical_page_url,
    project_root_url,
    rewrite_references,
    rewrite_references_with_report,
)

__all__ = [
    "extract_html_document",
    "extract_style_reference",
    "inject_preview_metadata",
    "insert_into_head",
    "canonical_page_url",
    "project_root_url",
    "rewrite_references",
    "rewrite_references_with_report",
]
