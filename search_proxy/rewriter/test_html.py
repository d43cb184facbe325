"""
Tests for the regex-based HTML rewriter.

Tests cover:
- Link (href) and resource (src) rewriting with both quote styles
- Script stripping, including unterminated and spliced tags
- Strict and loose form action rewriting
- URLs that must be left alone
- Idempotence of the full transform
"""

from urllib.parse import parse_qs, urlsplit
import re

import pytest

from search_proxy.rewriter.html import (
    FORM_ACTION_RULE,
    LINK_RULE,
    REWRITE_RULES,
    RESOURCE_RULE,
    proxied_url,
    rewrite_html,
    strip_scripts,
)


def _proxied_target(value: str) -> str:
    """Decode the url parameter of a rewritten attribute value."""
    return parse_qs(urlsplit(value).query)["url"][0]


def _attribute_values(document: str, attribute: str):
    return re.findall(rf'{attribute}=["\']([^"\']*)["\']', document, re.IGNORECASE)


SAMPLE_PAGE = """<!doctype html>
<html>
<head>
  <title>Results</title>
  <link rel="stylesheet" href="https://cdn.example.com/site.css">
  <script src="https://cdn.example.com/tracker.js"></script>
  <script type="text/javascript">
    var next = "<a href='http://evil.example.com'>";
  </script>
</head>
<body>
  <a href="http://example.com/x">first</a>
  <a href='https://example.org/path?a=1&amp;b=2'>second</a>
  <a href="/relative">relative</a>
  <img src="https://img.example.com/logo.png" alt="logo">
  <form action="https://example.com/search" method="post" class="f">
    <input name="q">
  </form>
  <form action=http://example.com/unquoted method=get></form>
  <form action="/local" method="get"></form>
  <SCRIPT>document.write("x")</SCRIPT>
</body>
</html>
"""


class TestLinkAndResourceRewriting:
    def test_double_quoted_href(self):
        result = rewrite_html('<a href="http://example.com/x">l</a>')

        assert result == '<a href="/proxy?url=http%3A%2F%2Fexample.com%2Fx">l</a>'

    def test_round_trip_preserves_query_and_fragment(self):
        original = "https://example.com/s?q=caf%C3%A9&x=1+2#frag"
        (value,) = _attribute_values(rewrite_html(f'<a href="{original}">l</a>'), "href")

        assert _proxied_target(value) == original

    def test_single_quotes_are_preserved(self):
        result = rewrite_html("<a href='https://example.com/'>l</a>")

        assert "href='/proxy?url=https%3A%2F%2Fexample.com%2F'" in result

    def test_mismatched_quotes_are_left_alone(self):
        document = "<a href=\"https://example.com/'>l</a>"

        assert rewrite_html(document) == document

    def test_case_insensitive_attribute_and_scheme(self):
        result = rewrite_html('<A HREF="HTTP://EXAMPLE.COM/">l</A>')

        assert 'HREF="/proxy?url=HTTP%3A%2F%2FEXAMPLE.COM%2F"' in result

    def test_character_references_are_decoded(self):
        result = rewrite_html('<a href="http://example.com/?a=1&amp;b=2">l</a>')

        (value,) = _attribute_values(result, "href")
        assert _proxied_target(value) == "http://example.com/?a=1&b=2"

    def test_bare_ampersand_parameters_are_not_entities(self):
        original = "http://example.com/?a=1&copy=2&section=3"
        (value,) = _attribute_values(rewrite_html(f'<a href="{original}">l</a>'), "href")

        assert _proxied_target(value) == original

    def test_src_attribute(self):
        result = rewrite_html('<img src="https://img.example.com/a.png" alt="">')

        assert 'src="/proxy?url=https%3A%2F%2Fimg.example.com%2Fa.png"' in result
        assert 'alt=""' in result

    @pytest.mark.parametrize(
        "document",
        [
            '<a href="/relative/path">l</a>',
            '<a href="page.html">l</a>',
            '<a href="//cdn.example.com/x">l</a>',
            '<a href="mailto:someone@example.com">l</a>',
            '<a href="javascript:void(0)">l</a>',
            '<img src="data:image/png;base64,iVBORw0KGgo=">',
            '<a href="ftp://files.example.com/">l</a>',
            "<p>Visit http://example.com today</p>",
        ],
    )
    def test_non_absolute_http_urls_untouched(self, document):
        assert rewrite_html(document) == document


class TestScriptStripping:
    def test_script_element_removed(self):
        result = rewrite_html("<p>a</p><script>alert(1)</script><p>b</p>")

        assert result == "<p>a</p><p>b</p>"

    def test_multiline_uppercase_script_with_attributes(self):
        document = '<SCRIPT type="text/javascript">\nvar a = "<a href=\'http://e.com\'>";\n</SCRIPT>done'

        assert rewrite_html(document) == "done"

    def test_shortest_span_keeps_content_between_scripts(self):
        result = rewrite_html("<script>a</script><p>keep</p><script>b</script>")

        assert result == "<p>keep</p>"

    def test_unterminated_script_tag_removed(self):
        result = rewrite_html('<p>x</p><script src="http://e.com/a.js">')

        assert "<script" not in result.lower()
        assert result == "<p>x</p>"

    def test_spliced_script_tags_removed(self):
        result = strip_scripts("<scr<script></script>ipt>alert(1)</script>")

        assert "<script" not in result.lower()

    def test_similar_tag_names_survive(self):
        document = "<scripts>not a script</scripts>"

        assert rewrite_html(document) == document


class TestFormActionRewriting:
    def test_action_rewritten_method_preserved(self):
        result = rewrite_html('<form action="https://example.com/s" method="post">')

        assert result == (
            '<form action="/formproxy?url=https%3A%2F%2Fexample.com%2Fs" method="post">'
        )

    def test_attributes_before_action_preserved(self):
        result = rewrite_html(
            "<form class='search' id=\"f\" action='http://example.com/find'>"
        )

        assert result == (
            "<form class='search' id=\"f\" action='/formproxy?url=http%3A%2F%2Fexample.com%2Ffind'>"
        )

    def test_unquoted_action_normalized(self):
        result = rewrite_html("<form action=http://example.com/s method=get>")

        assert result == (
            '<form action="/formproxy?url=http%3A%2F%2Fexample.com%2Fs" method=get>'
        )

    def test_inconsistently_quoted_action_normalized(self):
        result = rewrite_html("<form action=\"http://example.com/s' method=\"get\">")

        assert result == (
            '<form action="/formproxy?url=http%3A%2F%2Fexample.com%2Fs" method="get">'
        )

    @pytest.mark.parametrize(
        "document",
        [
            "<form action=/search method=get>",
            '<form action="/search" method="get">',
            "<form action='search.php'>",
            "<form method=post>",
        ],
    )
    def test_relative_actions_untouched(self, document):
        assert rewrite_html(document) == document

    def test_action_url_round_trips(self):
        result = rewrite_html('<form action="https://example.com/s?x=1" method="post">')

        (value,) = _attribute_values(result, "action")
        assert value.startswith("/formproxy?url=")
        assert _proxied_target(value) == "https://example.com/s?x=1"


class TestWholeDocument:
    def test_sample_page(self):
        result = rewrite_html(SAMPLE_PAGE)

        assert "<script" not in result.lower()
        assert "evil.example.com" not in result
        assert 'href="/proxy?url=https%3A%2F%2Fcdn.example.com%2Fsite.css"' in result
        assert 'href="/proxy?url=http%3A%2F%2Fexample.com%2Fx"' in result
        assert 'href="/relative"' in result
        assert 'src="/proxy?url=https%3A%2F%2Fimg.example.com%2Flogo.png"' in result
        assert 'action="/formproxy?url=https%3A%2F%2Fexample.com%2Fsearch" method="post"' in result
        assert 'action="/formproxy?url=http%3A%2F%2Fexample.com%2Funquoted" method=get' in result
        assert 'action="/local"' in result
        # Every remaining absolute reference is encoded inside a proxy path
        assert "http://" not in result
        assert "https://" not in result

    @pytest.mark.parametrize(
        "document",
        [
            SAMPLE_PAGE,
            '<a href="http://example.com/x">l</a>',
            "<form action=http://example.com/s method=get>",
            "<form action=\"http://example.com/s' method=\"get\">",
            "<scr<script></script>ipt>alert(1)</script>",
            "",
            "plain text, no markup",
        ],
    )
    def test_idempotent(self, document):
        once = rewrite_html(document)

        assert rewrite_html(once) == once

    def test_empty_document(self):
        assert rewrite_html("") == ""

    def test_malformed_markup_does_not_raise(self):
        document = '<a href="http://example.com/x"<<form action=">>"<img src=\'\''

        result = rewrite_html(document)

        assert isinstance(result, str)


class TestRules:
    def test_rule_order(self):
        assert REWRITE_RULES == (LINK_RULE, RESOURCE_RULE, FORM_ACTION_RULE)
        assert [rule.name for rule in REWRITE_RULES] == ["link", "resource", "form-action"]

    def test_rule_endpoints(self):
        assert LINK_RULE.endpoint == "/proxy"
        assert RESOURCE_RULE.endpoint == "/proxy"
        assert FORM_ACTION_RULE.endpoint == "/formproxy"

    def test_rule_applies_only_its_attribute(self):
        document = '<img src="http://example.com/a.png"><a href="http://example.com/">'

        result = RESOURCE_RULE.apply(document)

        assert 'src="/proxy?url=' in result
        assert 'href="http://example.com/"' in result

    def test_lone_surrogate_does_not_raise(self):
        result = rewrite_html('<a href="http://a.com/\ud800">x</a>')

        assert result == '<a href="/proxy?url=http%3A%2F%2Fa.com%2F%ED%A0%80">x</a>'

    def test_proxied_url_encodes_everything_reserved(self):
        assert proxied_url("/proxy", "http://a.com/?q=1&r=2") == (
            "/proxy?url=http%3A%2F%2Fa.com%2F%3Fq%3D1%26r%3D2"
        )
