"""
Regex-based HTML rewriting.

Routes absolute links, embedded resources and form submissions of a proxied
page back through the proxy and drops script elements. Not a parser: only
attribute values the patterns match are touched, everything else is left as
it was found.

Rewritten values are same-origin paths (``/proxy?url=...``), which the
absolute-URL patterns below never match, so the rules can run in sequence
and the whole transform is idempotent.
"""

import html
import re
from dataclasses import dataclass
from typing import Callable, Pattern, Tuple
from urllib.parse import quote

from search_proxy.utils import is_http_url
from search_proxy.vars import FORM_PROXY_PATH, PROXY_PATH

# Any callable with this shape can stand in for rewrite_html in the forwarder
Rewriter = Callable[[str], str]

_SCRIPT_ELEMENT = re.compile(r"<script\b[\s\S]*?</script\s*>", re.IGNORECASE)
# Opening tag left behind when a document never closes its script element
_DANGLING_SCRIPT = re.compile(r"<script\b[^>]*>?", re.IGNORECASE)


_CHARACTER_REFERENCE = re.compile(r"&(?:#[0-9]+|#[xX][0-9a-fA-F]+|[A-Za-z][A-Za-z0-9]*);")


def decode_attribute_value(value: str) -> str:
    """
    Resolve character references such as ``&amp;`` in an attribute value.

    Only references terminated by a semicolon are decoded; a bare ``&copy=1``
    in a query string is a parameter, not an entity.
    """
    return _CHARACTER_REFERENCE.sub(lambda m: html.unescape(m.group(0)), value)


def proxied_url(endpoint: str, url: str) -> str:
    """Same-origin path that hands ``url`` to ``endpoint`` as its ``url`` parameter."""
    return f"{endpoint}?url={quote(url, safe='', errors='surrogatepass')}"


@dataclass(frozen=True)
class RewriteRule:
    """Rewrites an absolute, quoted URL attribute to one of the proxy endpoints."""

    name: str
    pattern: Pattern
    endpoint: str

    def apply(self, document: str) -> str:
        def _replace(match):
            prefix, quote_char, url = match.group("prefix", "quote", "url")
            target = proxied_url(self.endpoint, decode_attribute_value(url))
            return f"{prefix}{quote_char}{target}{quote_char}"

        return self.pattern.sub(_replace, document)


def _attribute_pattern(attribute: str) -> Pattern:
    return re.compile(
        rf"(?P<prefix>{attribute}=)(?P<quote>[\"'])(?P<url>https?://[^\"'>\s]+)(?P=quote)",
        re.IGNORECASE,
    )


LINK_RULE = RewriteRule("link", _attribute_pattern("href"), PROXY_PATH)
RESOURCE_RULE = RewriteRule("resource", _attribute_pattern("src"), PROXY_PATH)
FORM_ACTION_RULE = RewriteRule(
    "form-action",
    re.compile(
        r"(?P<prefix><form\b[^>]*?action=)(?P<quote>[\"'])(?P<url>https?://[^\"'>\s]+)(?P=quote)",
        re.IGNORECASE,
    ),
    FORM_PROXY_PATH,
)

_LOOSE_FORM_ACTION = re.compile(r"(<form\b[^>]*?action=)([^>\s]+)", re.IGNORECASE)


def _rewrite_loose_form_actions(document: str, endpoint: str = FORM_PROXY_PATH) -> str:
    """
    Catch form actions the strict rule cannot: unquoted or mismatched quotes.

    The value is normalized to a double-quoted rewritten URL. Anything that is
    not an absolute http(s) URL once its quotes are removed, including actions
    already rewritten by the strict rule, is left alone.
    """

    def _replace(match):
        prefix, value = match.groups()
        cleaned = value.replace('"', "").replace("'", "")
        if not is_http_url(cleaned):
            return match.group(0)
        return f'{prefix}"{proxied_url(endpoint, decode_attribute_value(cleaned))}"'

    return _LOOSE_FORM_ACTION.sub(_replace, document)


def strip_scripts(document: str) -> str:
    # Repeat until stable; removing one tag can splice the halves of another together
    previous = None
    while previous != document:
        previous = document
        document = _SCRIPT_ELEMENT.sub("", document)
        document = _DANGLING_SCRIPT.sub("", document)
    return document


# Order matters: scripts go first so their bodies are never rewritten
REWRITE_RULES: Tuple[RewriteRule, ...] = (LINK_RULE, RESOURCE_RULE, FORM_ACTION_RULE)


def rewrite_html(document: str) -> str:
    """Route a page's absolute links, resources and forms through the proxy."""
    if not document:
        return document
    document = strip_scripts(document)
    for rule in REWRITE_RULES:
        document = rule.apply(document)
    return _rewrite_loose_form_actions(document)
