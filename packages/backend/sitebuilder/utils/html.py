from __future__ import annotations

import html as html_lib
import re
from typing import Optional


_HEAD_CLOSE_RE = re.compile(r"</head>", re.IGNORECASE)
_HEAD_OPEN_RE = re.compile(r"<head(?:\s[^>]*)?>", re.IGNORECASE)
_HTML_OPEN_RE = re.compile(r"<html(?P<attrs>[^>]*)>", re.IGNORECASE)
_STYLE_BLOCK_RE = re.compile(r"<style\b[^>]*>.*?</style\s*>", re.IGNORECASE | re.DOTALL)
_NAV_BLOCK_RE = re.compile(r"<nav\b[^>]*>.*?</nav\s*>", re.IGNORECASE | re.DOTALL)
_FENCE_RE = re.compile(r"```(?:html|HTML)?\s*\n?(.*?)```", re.DOTALL)
_DOC_START_RE = re.compile(r"<!DOCTYPE html|<html\b", re.IGNORECASE)
_DOC_END_RE = re.compile(r"</html\s*>", re.IGNORECASE)
_GENERATOR_META_RE = re.compile(r"<meta\s+name=[\"']generator[\"']", re.IGNORECASE)

GENERATOR_NAME = "sitebuilder"


def insert_into_head(html: str, block: str) -> str:
    """Insert a block before ``</head>``, creating a head if there is none."""
    if not block:
        return html
    if not html:
        return block

    head_close_match = _HEAD_CLOSE_RE.search(html)
    if head_close_match:
        insert_at = head_close_match.start()
        return f"{html[:insert_at]}{block}{html[insert_at:]}"

    head_open_match = _HEAD_OPEN_RE.search(html)
    if head_open_match:
        insert_at = head_open_match.end()
        return f"{html[:insert_at]}{block}{html[insert_at:]}"

    html_open_match = _HTML_OPEN_RE.search(html)
    if html_open_match:
        insert_at = html_open_match.end()
        head_block = f"<head>{block}</head>"
        return f"{html[:insert_at]}{head_block}{html[insert_at:]}"

    return f"{block}{html}"


def inject_preview_metadata(
    html: str,
    *,
    project_id: Optional[str],
    project_name: Optional[str],
    page_name: Optional[str],
) -> str:
    """Tag served markup with generator and project metadata; no-op when already tagged."""
    if not html or _GENERATOR_META_RE.search(html):
        return html

    tags = [f"<meta name=\"generator\" content=\"{GENERATOR_NAME}\">"]
    if project_id:
        tags.append(f"<meta name=\"sitebuilder:project-id\" content=\"{html_lib.escape(project_id)}\">")
    if project_name:
        tags.append(f"<meta name=\"sitebuilder:project-name\" content=\"{html_lib.escape(project_name)}\">")
    if page_name:
        tags.append(f"<meta name=\"sitebuilder:page-name\" content=\"{html_lib.escape(page_name)}\">")
    tagged = insert_into_head(html, "".join(tags))

    html_open = _HTML_OPEN_RE.search(tagged)
    if project_id and html_open and "data-project-id" not in html_open.group("attrs"):
        attrs = f"{html_open.group('attrs')} data-project-id=\"{html_lib.escape(project_id)}\""
        tagged = f"{tagged[:html_open.start()]}<html{attrs}>{tagged[html_open.end():]}"
    return tagged


def extract_html_document(text: str) -> str:
    """Strip markdown fences and prose around a generated document."""
    if not text:
        return ""
    candidate = text
    fenced = _FENCE_RE.search(candidate)
    if fenced and _DOC_START_RE.search(fenced.group(1)):
        candidate = fenced.group(1)

    start = _DOC_START_RE.search(candidate)
    if start:
        candidate = candidate[start.start():]
    end_matches = list(_DOC_END_RE.finditer(candidate))
    if end_matches:
        candidate = candidate[: end_matches[-1].end()]
    return candidate.strip()


def extract_style_reference(html: str, *, max_chars: int = 6000) -> str:
    """Collect the style and nav blocks of a page for reuse by sibling pages."""
    if not html:
        return ""
    parts = [match.group(0) for match in _STYLE_BLOCK_RE.finditer(html)]
    nav = _NAV_BLOCK_RE.search(html)
    if nav:
        parts.append(nav.group(0))
    reference = "\n".join(parts)
    if len(reference) > max_chars:
        reference = reference[:max_chars]
    return reference


def tail_excerpt(html: str, *, max_chars: int = 1500) -> str:
    if not html:
        return ""
    return html[-max_chars:]


__all__ = [
    "GENERATOR_NAME",
    "insert_into_head",
    "inject_preview_metadata",
    "extract_html_document",
    "extract_style_reference",
    "tail_excerpt",
]
