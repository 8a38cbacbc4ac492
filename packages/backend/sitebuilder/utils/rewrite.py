"""Canonical link rewriting for generated multi-page sites.

Pages of one project are generated independently and link to each other
with whatever relative form the model picked (``about.html``, ``./``,
``Contact``, ``location.href='faq.html'``).  ``rewrite_references`` maps
all of them onto ``/preview/{project_id}`` (index) and
``/preview/{project_id}/{page_name}`` so the stored markup navigates
inside the preview server.

The transform only touches validated attribute-value candidates and never
re-matches its own output, which makes it idempotent.
"""

from __future__ import annotations

import logging
import re
import zlib
from collections import abc
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from ..exceptions import RewriteInputError

logger = logging.getLogger(__name__)

PREVIEW_PREFIX = "/preview"
INDEX_PAGE = "index"
DEFAULT_PLACEHOLDER_BASE = "https://picsum.photos"

# Quoted attribute values may contain ">" (arrow functions in handlers).
_TAG_RE = re.compile(r"<[a-zA-Z](?:[^<>\"']|\"[^\"]*\"|'[^']*')*>")
_IMG_TAG_RE = re.compile(r"<img\b(?:[^<>\"']|\"[^\"]*\"|'[^']*')*>", re.IGNORECASE)
_SCRIPT_RE = re.compile(r"(<script\b[^>]*>)(.*?)(</script\s*>)", re.IGNORECASE | re.DOTALL)
_HREF_ATTR_RE = re.compile(
    r"(?P<prefix>(?<![\w-])href\s*=\s*)(?P<q>[\"'])(?P<value>(?:(?!(?P=q)).)*)(?P=q)",
    re.IGNORECASE,
)
_SRC_ATTR_RE = re.compile(
    r"(?P<prefix>(?<![\w-])src\s*=\s*)(?P<q>[\"'])(?P<value>(?:(?!(?P=q)).)*)(?P=q)",
    re.IGNORECASE,
)
_ALT_ATTR_RE = re.compile(r"(?<![\w-])alt\s*=\s*([\"'])(.*?)\1", re.IGNORECASE | re.DOTALL)
_HANDLER_ATTR_RE = re.compile(
    r"(?P<prefix>(?<![\w-])on[a-z]+\s*=\s*)(?P<q>[\"'])(?P<value>(?:(?!(?P=q)).)*)(?P=q)",
    re.IGNORECASE | re.DOTALL,
)
_NAV_EXPR_RE = re.compile(
    r"(?P<prefix>"
    r"(?:(?:window|document|self|top|parent)\.)?location(?:\.href)?\s*=\s*"
    r"|(?:(?:window|document|self|top|parent)\.)?location\.(?:assign|replace)\(\s*"
    r"|window\.open\(\s*"
    r")"
    r"(?P<q>[\"'`])(?P<value>[^\"'`\n]*)(?P=q)"
)
_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")
_DOCUMENT_LINK_RE = re.compile(
    r"^(?:\.{0,2}/)?(?:[^?#]*/)?(?P<name>[^/?#]+)\.html?(?P<tail>[?#].*)?$",
    re.IGNORECASE,
)
_BARE_TOKEN_RE = re.compile(r"^(?:\./)?(?P<name>[^/?#\s\\]+)$")
_HOME_TOKENS = {".", "./", "/", "index", "./index", "/index", "index.html", "./index.html", "/index.html"}
_ASSET_PREFIXES = ("/assets/images/", "./images/", "/images/", "images/")

_IMAGE_CATEGORIES = (
    ("logo", ("logo", "brand"), (200, 80)),
    ("hero", ("hero", "banner", "background", "cover", "header-bg"), (1600, 900)),
    ("avatar", ("avatar", "profile", "team", "person", "user", "author"), (200, 200)),
)
_DEFAULT_IMAGE = ("default", (800, 600))


@dataclass
class RewriteReport:
    collapsed_self: int = 0
    document_links: int = 0
    home_links: int = 0
    bare_links: int = 0
    script_targets: int = 0
    images: int = 0
    warnings: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return (
            self.collapsed_self
            + self.document_links
            + self.home_links
            + self.bare_links
            + self.script_targets
            + self.images
        )

    def to_dict(self) -> dict:
        return {
            "collapsed_self": self.collapsed_self,
            "document_links": self.document_links,
            "home_links": self.home_links,
            "bare_links": self.bare_links,
            "script_targets": self.script_targets,
            "images": self.images,
            "warnings": list(self.warnings),
        }


def project_root_url(project_id: str) -> str:
    return f"{PREVIEW_PREFIX}/{project_id}"


def canonical_page_url(project_id: str, page_name: str) -> str:
    if not page_name or page_name.lower() == INDEX_PAGE:
        return project_root_url(project_id)
    return f"{PREVIEW_PREFIX}/{project_id}/{page_name}"


def build_name_lookup(page_names: Iterable[object]) -> Dict[str, str]:
    """Map lower-cased page names to their declared casing; first entry wins."""
    lookup: Dict[str, str] = {}
    for name in page_names or ():
        if not isinstance(name, str):
            continue
        declared = name.strip()
        if not declared:
            continue
        lookup.setdefault(declared.lower(), declared)
    lookup.setdefault(INDEX_PAGE, INDEX_PAGE)
    return lookup


class _TargetResolver:
    def __init__(self, project_id: str, lookup: Dict[str, str], report: RewriteReport) -> None:
        self.project_id = project_id
        self.lookup = lookup
        self.report = report
        self.root = project_root_url(project_id)
        self._self_aliases = {f"{self.root}/index", f"{self.root}/index.html", f"{self.root}/"}

    def _canonical(self, declared: str) -> str:
        return canonical_page_url(self.project_id, declared)

    def resolve(self, raw: str) -> Optional[str]:
        value = raw.strip()
        if not value or value.startswith("#") or value.startswith("//") or _SCHEME_RE.match(value):
            return None

        if value in self._self_aliases:
            self.report.collapsed_self += 1
            return self.root
        if value.startswith(f"{PREVIEW_PREFIX}/"):
            return None

        document = _DOCUMENT_LINK_RE.match(value)
        if document:
            declared = self.lookup.get(document.group("name").lower())
            if declared is None:
                return None
            self.report.document_links += 1
            return f"{self._canonical(declared)}{document.group('tail') or ''}"

        if value.lower() in _HOME_TOKENS:
            self.report.home_links += 1
            return self.root

        bare = _BARE_TOKEN_RE.match(value)
        if bare and not _SCHEME_RE.match(bare.group("name")):
            declared = self.lookup.get(bare.group("name").lower())
            if declared is not None:
                self.report.bare_links += 1
                return self._canonical(declared)
        return None


def _replace_attr(pattern: re.Pattern[str], text: str, resolve: Callable[[str], Optional[str]]) -> str:
    def _sub(match: re.Match[str]) -> str:
        replacement = resolve(match.group("value"))
        if replacement is None or replacement == match.group("value"):
            return match.group(0)
        quote = match.group("q")
        return f"{match.group('prefix')}{quote}{replacement}{quote}"

    return pattern.sub(_sub, text)


def _rewrite_nav_expressions(text: str, resolver: _TargetResolver) -> str:
    def _resolve(value: str) -> Optional[str]:
        replacement = resolver.resolve(value)
        if replacement is not None:
            resolver.report.script_targets += 1
        return replacement

    return _replace_attr(_NAV_EXPR_RE, text, _resolve)


def placeholder_image_url(path: str, alt: str = "", *, base_url: str = DEFAULT_PLACEHOLDER_BASE) -> str:
    haystack = f"{path} {alt}".lower()
    category, (width, height) = _DEFAULT_IMAGE
    for name, keywords, size in _IMAGE_CATEGORIES:
        if any(keyword in haystack for keyword in keywords):
            category, (width, height) = name, size
            break
    seed = zlib.crc32(path.encode("utf-8")) % 100000
    return f"{base_url.rstrip('/')}/seed/{category}-{seed}/{width}/{height}"


def _rewrite_images(html: str, report: RewriteReport, base_url: str) -> str:
    def _rewrite_tag(tag_match: re.Match[str]) -> str:
        tag = tag_match.group(0)
        alt_match = _ALT_ATTR_RE.search(tag)
        alt = alt_match.group(2) if alt_match else ""

        def _resolve(value: str) -> Optional[str]:
            stripped = value.strip()
            if not stripped.lower().startswith(_ASSET_PREFIXES):
                return None
            report.images += 1
            return placeholder_image_url(stripped, alt, base_url=base_url)

        return _replace_attr(_SRC_ATTR_RE, tag, _resolve)

    return _IMG_TAG_RE.sub(_rewrite_tag, html)


def rewrite_references_with_report(
    html: object,
    project_id: object,
    current_page_name: object = INDEX_PAGE,
    known_page_names: Optional[Iterable[object]] = None,
    *,
    placeholder_base: str = DEFAULT_PLACEHOLDER_BASE,
    log: Optional[logging.Logger] = None,
) -> tuple[object, RewriteReport]:
    log = log or logger
    report = RewriteReport()
    if not isinstance(html, str):
        error = RewriteInputError(f"html must be a string, got {type(html).__name__}")
        report.warnings.append(str(error))
        log.warning("Skipping link rewrite: %s", error.with_trace())
        return html, report
    if not isinstance(project_id, str) or not project_id.strip() or "/" in project_id:
        error = RewriteInputError(f"invalid project id: {project_id!r}")
        report.warnings.append(str(error))
        log.warning("Skipping link rewrite: %s", error.with_trace())
        return html, report
    if not html:
        return html, report

    if isinstance(known_page_names, (str, bytes)) or not (
        known_page_names is None or isinstance(known_page_names, abc.Iterable)
    ):
        error = RewriteInputError(f"known page names must be a collection, got {type(known_page_names).__name__}")
        report.warnings.append(str(error))
        log.warning("Skipping link rewrite: %s", error.with_trace())
        return html, report

    names: List[object] = list(known_page_names or [])
    if isinstance(current_page_name, str) and current_page_name.strip():
        names.append(current_page_name)
    resolver = _TargetResolver(project_id.strip(), build_name_lookup(names), report)

    def _rewrite_tag(tag_match: re.Match[str]) -> str:
        tag = _replace_attr(_HREF_ATTR_RE, tag_match.group(0), resolver.resolve)
        return _replace_attr(
            _HANDLER_ATTR_RE,
            tag,
            lambda value: _rewrite_nav_expressions(value, resolver),
        )

    rewritten = _TAG_RE.sub(_rewrite_tag, html)
    rewritten = _SCRIPT_RE.sub(
        lambda match: f"{match.group(1)}{_rewrite_nav_expressions(match.group(2), resolver)}{match.group(3)}",
        rewritten,
    )
    rewritten = _rewrite_images(rewritten, report, placeholder_base)

    if report.total:
        log.debug(
            "Rewrote references",
            extra={"data": {"project_id": project_id, "page": current_page_name, **report.to_dict()}},
        )
    return rewritten, report


def rewrite_references(
    html: object,
    project_id: object,
    current_page_name: object = INDEX_PAGE,
    known_page_names: Optional[Iterable[object]] = None,
    *,
    placeholder_base: str = DEFAULT_PLACEHOLDER_BASE,
    log: Optional[logging.Logger] = None,
) -> object:
    rewritten, _ = rewrite_references_with_report(
        html,
        project_id,
        current_page_name,
        known_page_names,
        placeholder_base=placeholder_base,
        log=log,
    )
    return rewritten


__all__ = [
    "RewriteReport",
    "build_name_lookup",
    "canonical_page_url",
    "placeholder_image_url",
    "project_root_url",
    "rewrite_references",
    "rewrite_references_with_report",
]
