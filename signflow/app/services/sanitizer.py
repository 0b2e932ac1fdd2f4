"""
Allow-list HTML sanitizer.

This module is the trust boundary between untrusted markup (DOCX
conversion output, editor content) and everything downstream of it,
including the headless renderer, which does NOT re-sanitize.

Strategy: parse into a tree with BeautifulSoup and walk it once.

- Tags outside the allow-list are unwrapped: the tag disappears, its
  children are re-parented in place. Unknown wrappers degrade to their
  content instead of destroying it.
- Script-like containers are removed together with their content.
- Attributes outside the tag's allow-list (or the wildcard list) are
  removed. ``style`` and ``on*`` handlers are never allowed.
- ``href``/``src`` values with a scheme outside the permitted set are
  removed. Relative URLs are kept.
- Comments, doctypes and processing instructions are dropped silently.

After the structural pass the tree is whitespace-normalized: line endings
become ``\\n``, horizontal whitespace runs collapse to a single space,
and paragraphs with no rendered text (and no image) are removed. Text
nodes made only of whitespace are folded the way the parser folds them
(to ``"\\n"`` if they contain a newline, else to ``" "``), so removals
that leave neighbouring whitespace runs behind do not change the output
of a second pass.

The tree is built with the stdlib ``html.parser`` backend, which does not
apply HTML5 implied end tags: ``<li>a<li>b`` nests the second item inside
the first. Browsers re-parse the serialized output to the same rendering.

Guarantees:
- sanitize(sanitize(h)) == sanitize(h)
- clean input is returned unchanged modulo whitespace normalization
- every removed tag or attribute is reported, in document order
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional

from bs4 import BeautifulSoup
from bs4.dammit import EntitySubstitution
from bs4.element import NavigableString, PreformattedString, Tag
from bs4.formatter import HTMLFormatter

from signflow.app.errors import StrictSanitizationError, ValidationError
from signflow.app.schemas.document import SanitizationViolation

logger = logging.getLogger(__name__)

ViolationCallback = Callable[[SanitizationViolation], None]


# ---------------------------------------------------------------------------
# Default policy
# ---------------------------------------------------------------------------

ALLOWED_TAGS: FrozenSet[str] = frozenset({
    # Document structure
    "html", "head", "body", "main", "article", "section", "nav", "aside",
    "header", "footer", "div", "span",
    # Headings
    "h1", "h2", "h3", "h4", "h5", "h6",
    # Text content
    "p", "br", "hr",
    # Semantic text formatting
    "strong", "b", "em", "i", "u", "s", "sub", "sup", "mark", "small",
    "blockquote", "q", "cite", "code", "pre", "kbd", "samp",
    # Lists
    "ul", "ol", "li", "dl", "dt", "dd",
    # Tables
    "table", "caption", "thead", "tbody", "tfoot", "tr", "th", "td",
    "colgroup", "col",
    # Media
    "img", "figure", "figcaption",
    # Links
    "a",
})

WILDCARD = "*"

ALLOWED_ATTRIBUTES: Dict[str, FrozenSet[str]] = {
    WILDCARD: frozenset({"id", "class", "lang", "dir", "title"}),
    "a": frozenset({"href", "target", "rel", "name"}),
    "img": frozenset({"src", "alt", "width", "height"}),
    "td": frozenset({"colspan", "rowspan", "scope", "headers"}),
    "th": frozenset({"colspan", "rowspan", "scope", "headers"}),
    "ol": frozenset({"start", "type", "value"}),
    "li": frozenset({"value"}),
}

# Removed with their content: their text is code or form state, not prose.
DISCARD_CONTENT_TAGS: FrozenSet[str] = frozenset({
    "script", "style", "textarea", "option", "noscript", "template",
})

URL_ATTRIBUTES: FrozenSet[str] = frozenset({"href", "src"})

ALLOWED_SCHEMES: FrozenSet[str] = frozenset({"http", "https", "mailto", "data"})

ALLOWED_SCHEMES_BY_TAG: Dict[str, FrozenSet[str]] = {
    "img": frozenset({"http", "https", "data"}),
}


@dataclass(frozen=True)
class SanitizationPolicy:
    """Tag, attribute and URL-scheme vocabulary enforced by the sanitizer."""

    allowed_tags: FrozenSet[str] = ALLOWED_TAGS
    allowed_attributes: Dict[str, FrozenSet[str]] = field(
        default_factory=lambda: dict(ALLOWED_ATTRIBUTES)
    )
    discard_content_tags: FrozenSet[str] = DISCARD_CONTENT_TAGS
    allowed_schemes: FrozenSet[str] = ALLOWED_SCHEMES
    allowed_schemes_by_tag: Dict[str, FrozenSet[str]] = field(
        default_factory=lambda: dict(ALLOWED_SCHEMES_BY_TAG)
    )

    def attributes_for(self, tag_name: str) -> FrozenSet[str]:
        return (
            self.allowed_attributes.get(tag_name, frozenset())
            | self.allowed_attributes.get(WILDCARD, frozenset())
        )

    def schemes_for(self, tag_name: str) -> FrozenSet[str]:
        return self.allowed_schemes_by_tag.get(tag_name, self.allowed_schemes)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


class _SourceOrderFormatter(HTMLFormatter):
    """HTML5 void tags, minimal entity escaping, attributes in source order."""

    def attributes(self, tag):
        return list(tag.attrs.items())


_FORMATTER = _SourceOrderFormatter(
    entity_substitution=EntitySubstitution.substitute_xml,
    void_element_close_prefix=None,
)

_HORIZONTAL_WHITESPACE = re.compile(r"[ \t\f\v]+")

# Characters bs4 treats as whitespace when folding whitespace-only runs.
_ASCII_SPACES = "\x20\x0a\x09\x0c\x0d"
_URL_NOISE = re.compile(r"[\x00-\x20\x7f]+")
_URL_SCHEME = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.\-]*):")


def _url_scheme(value: str) -> Optional[str]:
    """
    Return the lowercased scheme of ``value``, or None for relative URLs.

    Whitespace and control characters are ignored, so obfuscations such
    as ``"java\\tscript:"`` are still recognized.
    """
    match = _URL_SCHEME.match(_URL_NOISE.sub("", value))
    if match is None:
        return None
    return match.group(1).lower()


def _fold_whitespace(text: str) -> str:
    """
    Collapse horizontal runs; reduce a whitespace-only string to a single
    newline or space, as the parser does for whitespace-only text.
    """
    collapsed = _HORIZONTAL_WHITESPACE.sub(" ", text)
    if collapsed and not collapsed.strip(_ASCII_SPACES):
        return "\n" if "\n" in collapsed else " "
    return collapsed


# ---------------------------------------------------------------------------
# Sanitizer
# ---------------------------------------------------------------------------


class HtmlSanitizer:
    """
    Stateless allow-list sanitizer.

    Instances hold only an immutable policy and may be shared freely.
    """

    def __init__(
        self,
        policy: Optional[SanitizationPolicy] = None,
        *,
        max_input_bytes: Optional[int] = None,
    ) -> None:
        self.policy = policy or SanitizationPolicy()
        self.max_input_bytes = max_input_bytes

    def sanitize(
        self,
        html: str,
        *,
        strict: bool = False,
        on_violation: Optional[ViolationCallback] = None,
    ) -> str:
        """
        Sanitize and normalize an HTML fragment.

        Args:
            html:
                Untrusted HTML.
            strict:
                If true, any removed construct fails the whole call with
                StrictSanitizationError and no output is returned.
            on_violation:
                Invoked once per removed tag or attribute, in document
                order, before a strict-mode failure is raised.

        Raises:
            ValidationError:
                If the input exceeds ``max_input_bytes``.
            StrictSanitizationError:
                In strict mode, if anything was removed.
        """
        if not isinstance(html, str):
            raise TypeError(
                f"sanitize expects str, got {type(html).__name__}"
            )

        if (
            self.max_input_bytes is not None
            and len(html.encode("utf-8")) > self.max_input_bytes
        ):
            raise ValidationError(
                "HTML content too large",
                code="CONTENT_TOO_LARGE",
                status_code=413,
            )

        if not html:
            return ""

        violations: List[SanitizationViolation] = []

        def report(violation: SanitizationViolation) -> None:
            violations.append(violation)
            if on_violation is not None:
                on_violation(violation)

        html = html.replace("\r\n", "\n").replace("\r", "\n")
        soup = BeautifulSoup(html, "html.parser", multi_valued_attributes=None)

        self._drop_non_content_nodes(soup)
        self._filter_tree(soup, report)

        if strict and violations:
            logger.info(
                "strict_sanitization_rejected",
                extra={"violation_count": len(violations)},
            )
            raise StrictSanitizationError(violations)

        self._remove_empty_paragraphs(soup)
        soup.smooth()
        self._collapse_whitespace(soup)

        return soup.decode(formatter=_FORMATTER).strip()

    # ------------------------------------------------------------------
    # Structural pass
    # ------------------------------------------------------------------

    @staticmethod
    def _drop_non_content_nodes(soup: BeautifulSoup) -> None:
        # Comments, doctypes, CDATA, declarations, processing instructions.
        for node in list(soup.descendants):
            if isinstance(node, PreformattedString):
                node.extract()

    def _filter_tree(
        self,
        soup: BeautifulSoup,
        report: ViolationCallback,
    ) -> None:
        for tag in soup.find_all(True):
            if tag.decomposed:
                continue

            name = tag.name.lower()

            if name in self.policy.discard_content_tags:
                report(SanitizationViolation(
                    kind="tag",
                    tag=name,
                    reason="removed with its content",
                ))
                tag.decompose()
                continue

            if name not in self.policy.allowed_tags:
                report(SanitizationViolation(
                    kind="tag",
                    tag=name,
                    reason="not in allow-list; content kept",
                ))
                tag.unwrap()
                continue

            self._filter_attributes(tag, name, report)

    def _filter_attributes(
        self,
        tag: Tag,
        name: str,
        report: ViolationCallback,
    ) -> None:
        allowed = self.policy.attributes_for(name)

        for attr, value in list(tag.attrs.items()):
            key = attr.lower()

            if key not in allowed:
                if key.startswith("on"):
                    reason = "event handler"
                elif key == "style":
                    reason = "inline style"
                else:
                    reason = "not allowed on this tag"
                report(SanitizationViolation(
                    kind="attribute",
                    tag=name,
                    attribute=attr,
                    reason=reason,
                ))
                del tag[attr]
                continue

            if key in URL_ATTRIBUTES:
                scheme = _url_scheme(str(value))
                if scheme is not None and scheme not in self.policy.schemes_for(name):
                    report(SanitizationViolation(
                        kind="attribute",
                        tag=name,
                        attribute=attr,
                        reason=f"disallowed URL scheme '{scheme}'",
                    ))
                    del tag[attr]

    # ------------------------------------------------------------------
    # Normalization pass
    # ------------------------------------------------------------------

    @staticmethod
    def _remove_empty_paragraphs(soup: BeautifulSoup) -> None:
        for paragraph in soup.find_all("p"):
            if paragraph.decomposed:
                continue
            if paragraph.find("img") is not None:
                continue
            if not paragraph.get_text().strip():
                paragraph.decompose()

    @staticmethod
    def _collapse_whitespace(soup: BeautifulSoup) -> None:
        for text in list(soup.descendants):
            if not isinstance(text, NavigableString):
                continue
            collapsed = _fold_whitespace(str(text))
            if collapsed != text:
                text.replace_with(collapsed)


def sanitize_html(
    html: str,
    *,
    strict: bool = False,
    on_violation: Optional[ViolationCallback] = None,
) -> str:
    """Sanitize ``html`` with the default policy."""
    return HtmlSanitizer().sanitize(
        html,
        strict=strict,
        on_violation=on_violation,
    )
