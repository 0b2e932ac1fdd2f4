"""
Tests for the allow-list HTML sanitizer.

Coverage matrix:

  Clean markup          Allowed tags/attributes                     → unchanged
  Script containers     script/style/template and their content     → removed
  Unknown tags          <foo>, <font>                               → unwrapped, text kept
  Attributes            on*, style, off-list attributes             → stripped
  URL schemes           javascript:, obfuscated schemes, img mailto → stripped
  Whitespace            runs, CRLF, empty paragraphs                → normalized
  Strict mode           any violation                               → StrictSanitizationError
  Reporting             every removal                               → callback, in document order
  Parser structure      implicitly closed <li>                      → nested, stable
  Idempotence           sanitize(sanitize(h)), fixed and generated  → sanitize(h)
"""

import itertools

import pytest

from signflow.app.errors import (
    StrictSanitizationError,
    StrictValidationError,
    ValidationError,
)
from signflow.app.services.sanitizer import HtmlSanitizer, sanitize_html


def collect(html, **kwargs):
    violations = []
    result = sanitize_html(html, on_violation=violations.append, **kwargs)
    return result, violations


# ---------------------------------------------------------------------------
# Clean input
# ---------------------------------------------------------------------------

def test_clean_markup_is_unchanged():
    html = "<h1>Title</h1><p>Paragraph</p>"

    result, violations = collect(html)

    assert result == html
    assert violations == []


def test_allowed_attributes_survive_in_source_order():
    html = (
        '<p id="intro" class="lead">Hi</p>'
        '<a href="https://example.com/x?a=1&amp;b=2" title="Example">link</a>'
        '<td colspan="2">cell</td>'
    )

    result, violations = collect(html)

    assert violations == []
    assert '<p id="intro" class="lead">Hi</p>' in result
    assert 'href="https://example.com/x?a=1&amp;b=2"' in result
    assert '<td colspan="2">cell</td>' in result


def test_void_elements_are_not_self_closed():
    result = sanitize_html("<p>line<br>next</p><hr>")

    assert result == "<p>line<br>next</p><hr>"


def test_empty_input_returns_empty_without_violations():
    result, violations = collect("")

    assert result == ""
    assert violations == []


def test_non_string_input_is_rejected():
    with pytest.raises(TypeError):
        sanitize_html(b"<p>bytes</p>")


# ---------------------------------------------------------------------------
# Script-like containers
# ---------------------------------------------------------------------------

def test_script_is_removed_with_its_content():
    result, violations = collect("<p>Test</p><script>alert(1)</script>")

    assert result == "<p>Test</p>"
    assert len(violations) == 1
    assert violations[0].kind == "tag"
    assert violations[0].tag == "script"


@pytest.mark.parametrize(
    "container",
    ["style", "textarea", "noscript", "template"],
)
def test_other_script_like_containers_lose_their_content(container):
    result = sanitize_html(f"<p>Keep</p><{container}>drop me</{container}>")

    assert result == "<p>Keep</p>"
    assert "drop me" not in result


def test_nested_content_of_discarded_container_is_not_reported():
    _, violations = collect("<template><foo onclick='x'>a</foo></template>")

    assert [v.tag for v in violations] == ["template"]


# ---------------------------------------------------------------------------
# Unknown tags
# ---------------------------------------------------------------------------

def test_unknown_tag_is_unwrapped_and_text_kept():
    result, violations = collect("<p>Normal <foo>Unknown</foo></p>")

    assert result == "<p>Normal Unknown</p>"
    assert [(v.kind, v.tag) for v in violations] == [("tag", "foo")]


def test_unwrapped_children_are_still_filtered():
    result = sanitize_html('<font color="red"><em onclick="x()">hi</em></font>')

    assert result == "<em>hi</em>"


# ---------------------------------------------------------------------------
# Attributes
# ---------------------------------------------------------------------------

def test_event_handler_is_stripped():
    result, violations = collect('<p onclick="alert(1)">Click</p>')

    assert result == "<p>Click</p>"
    assert violations[0].attribute == "onclick"
    assert violations[0].reason == "event handler"


def test_inline_style_is_stripped():
    result, violations = collect('<p style="color:red">Red</p>')

    assert result == "<p>Red</p>"
    assert violations[0].reason == "inline style"


def test_attribute_allowed_on_other_tag_is_stripped():
    result = sanitize_html('<p colspan="2" lang="en">x</p>')

    assert result == '<p lang="en">x</p>'


def test_violation_descriptions_are_readable():
    _, violations = collect('<script>x</script><p onclick="y">z</p>')

    assert violations[0].describe() == (
        "Stripped <script> tag (removed with its content)"
    )
    assert violations[1].describe() == (
        "Stripped attribute 'onclick' from <p> (event handler)"
    )


# ---------------------------------------------------------------------------
# URL schemes
# ---------------------------------------------------------------------------

def test_javascript_href_is_stripped():
    result = sanitize_html('<a href="javascript:alert(1)">x</a>')

    assert result == "<a>x</a>"


def test_obfuscated_javascript_scheme_is_stripped():
    result = sanitize_html('<a href=" JaVa&#x09;script:alert(1)">x</a>')

    assert "href" not in result


def test_relative_and_allowed_urls_are_kept():
    html = (
        '<a href="/docs/page">a</a>'
        '<a href="#section">b</a>'
        '<a href="mailto:someone@example.com">c</a>'
        '<img src="data:image/png;base64,iVBORw0KGgo=" alt="sig">'
    )

    result, violations = collect(html)

    assert violations == []
    assert result == html


def test_img_does_not_accept_mailto():
    result, violations = collect('<img src="mailto:x@example.com" alt="a">')

    assert result == '<img alt="a">'
    assert violations[0].reason == "disallowed URL scheme 'mailto'"


# ---------------------------------------------------------------------------
# Whitespace normalization
# ---------------------------------------------------------------------------

def test_whitespace_runs_collapse():
    assert sanitize_html("<p>  Hello   World  </p>") == "<p> Hello World </p>"


def test_empty_paragraphs_are_removed():
    result, violations = collect("<p></p><p>  </p>")

    assert result == ""
    assert violations == []


def test_paragraph_holding_only_an_image_is_kept():
    html = '<p><img src="https://example.com/a.png" alt=""></p>'

    assert sanitize_html(html) == html


def test_line_endings_are_normalized():
    result = sanitize_html("<p>a</p>\r\n<p>b</p>\r<p>c</p>")

    assert "\r" not in result
    assert result == "<p>a</p>\n<p>b</p>\n<p>c</p>"


def test_whitespace_left_by_removed_nodes_folds_to_one_newline():
    assert sanitize_html(
        "<p>a</p>\n <script>x</script>\n<p>b</p>"
    ) == "<p>a</p>\n<p>b</p>"
    assert sanitize_html(
        "<div>\n<p>a</p>\n  <p> </p>\n<p>b</p></div>"
    ) == "<div>\n<p>a</p>\n<p>b</p></div>"


def test_whitespace_between_inline_nodes_folds_to_one_space():
    assert sanitize_html("<b>a</b> <script>x</script> <i>b</i>") == "<b>a</b> <i>b</i>"


def test_comments_are_dropped_silently():
    result, violations = collect("<p>a<!-- secret -->b</p>")

    assert result == "<p>ab</p>"
    assert violations == []


# ---------------------------------------------------------------------------
# Strict mode
# ---------------------------------------------------------------------------

def test_strict_mode_raises_on_any_violation():
    with pytest.raises(StrictSanitizationError) as exc_info:
        sanitize_html("<script>x</script>", strict=True)

    assert exc_info.value.status_code == 422
    assert exc_info.value.violations == [
        "Stripped <script> tag (removed with its content)"
    ]


def test_strict_mode_alias_matches():
    assert StrictValidationError is StrictSanitizationError


def test_strict_mode_reports_before_raising():
    violations = []

    with pytest.raises(StrictSanitizationError):
        sanitize_html(
            "<p onclick='a'>x</p><script>x</script>",
            strict=True,
            on_violation=violations.append,
        )

    assert len(violations) == 2


def test_strict_mode_passes_clean_input():
    html = "<h2>Terms</h2><ul><li>One</li></ul>"

    assert sanitize_html(html, strict=True) == html


def test_non_strict_mode_reports_through_callback():
    calls = []

    sanitize_html("<script>x</script>", on_violation=calls.append)

    assert len(calls) >= 1


# ---------------------------------------------------------------------------
# Limits
# ---------------------------------------------------------------------------

def test_oversized_input_is_rejected():
    sanitizer = HtmlSanitizer(max_input_bytes=16)

    with pytest.raises(ValidationError) as exc_info:
        sanitizer.sanitize("<p>" + "x" * 32 + "</p>")

    assert exc_info.value.code == "CONTENT_TOO_LARGE"
    assert exc_info.value.status_code == 413


# ---------------------------------------------------------------------------
# Parser structure
# ---------------------------------------------------------------------------

def test_implicitly_closed_list_items_are_nested():
    result = sanitize_html("<ul><li>a<li>b</ul>")

    assert result == "<ul><li>a<li>b</li></li></ul>"
    assert sanitize_html(result) == result


# ---------------------------------------------------------------------------
# Idempotence
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "html",
    [
        "<h1>Title</h1><p>Paragraph</p>",
        "<p>  Hello   World  </p><p></p>",
        "<p>Normal <foo>Unknown</foo> <b>bold</b></p><script>x</script>",
        '<a href="javascript:x" onclick="y" class="c">a &amp; b &lt; c</a>',
        "<div>\n\t<p>one</p>\r\n  <p>\t</p>\n<p>two</p>\n</div>",
        "<table><tr><td style='x'>1</td><td>2</td></tr></table>",
        "<p>a<!-- c -->b&nbsp;&nbsp;c</p>",
        "<p><span> </span></p><p>x<br>y</p>",
        "<p>a</p>\n <script>x</script>\n<p>b</p>",
        "<div>\n<p>a</p>\n  <p> </p>\n<p>b</p></div>",
        "<ul><li>a<li>b</ul>",
    ],
)
def test_sanitize_is_idempotent(html):
    once = sanitize_html(html)

    assert sanitize_html(once) == once


SEPARATORS = ["", " ", "\n", "\n  ", " \t\n", "\r\n\r\n"]

REMOVABLE = [
    "<script>x</script>",
    "<style>s</style>",
    "<p></p>",
    "<p> \t</p>",
    "<!-- c -->",
    "<foo> </foo>",
]


def generated_documents():
    for before, removable, after, wrapped in itertools.product(
        SEPARATORS, REMOVABLE, SEPARATORS, (False, True)
    ):
        html = f"<p>a</p>{before}{removable}{after}<p>b</p>"
        if wrapped:
            html = f"<div>{after}{html}{before}</div>"
        yield html


@pytest.mark.parametrize("html", list(generated_documents()))
def test_sanitize_is_idempotent_around_removed_nodes(html):
    once = sanitize_html(html)

    assert sanitize_html(once) == once
    assert "<p>a</p>" in once and "<p>b</p>" in once
