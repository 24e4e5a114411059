"""Tests for publisher CSS sanitization."""

import time

import pytest

from epub2bundle.css_sanitizer import (
    is_safe_css_url,
    is_safe_stylesheet_href,
    sanitize_declaration_list,
    sanitize_stylesheet,
)


class TestStylesheetHref:
    def test_package_local_hrefs_are_safe(self):
        assert is_safe_stylesheet_href("chapter2.xhtml")
        assert is_safe_stylesheet_href("styles/base.css")
        assert is_safe_stylesheet_href("../styles/base.css")
        assert is_safe_stylesheet_href("/OPS/styles/base.css")

    def test_external_hrefs_are_rejected(self):
        assert not is_safe_stylesheet_href("//cdn.example/x.css")
        assert not is_safe_stylesheet_href("javascript:alert(1)")
        assert not is_safe_stylesheet_href("https://example.com/theme.css")
        assert not is_safe_stylesheet_href("http://example.com/theme.css")

    def test_data_href_is_rejected(self):
        assert not is_safe_stylesheet_href("data:text/css,body{}")

    def test_empty_href_is_rejected(self):
        assert not is_safe_stylesheet_href("")
        assert not is_safe_stylesheet_href("   ")

    def test_obfuscated_scheme_is_rejected(self):
        assert not is_safe_stylesheet_href("java\tscript:alert(1)")
        assert not is_safe_stylesheet_href(" \x01javascript:alert(1)")
        assert not is_safe_stylesheet_href("\\\\cdn.example/x.css")


class TestCssUrl:
    def test_fragment_and_data_are_safe(self):
        assert is_safe_css_url("#glyph")
        assert is_safe_css_url("data:image/png;base64,AAAA")
        assert is_safe_css_url("DATA:image/png;base64,AAAA")

    def test_relative_path_is_safe(self):
        assert is_safe_css_url("../images/bg.png")

    def test_schemes_and_protocol_relative_are_unsafe(self):
        assert not is_safe_css_url("https://evil.example.com/bg.png")
        assert not is_safe_css_url("//evil.example.com/bg.png")
        assert not is_safe_css_url("file:///etc/passwd")
        assert not is_safe_css_url("")

    def test_escaped_scheme_is_unsafe(self):
        # \68 is "h"
        assert not is_safe_css_url("\\68 ttp://evil.example.com/x.png")


class TestSanitizeStylesheet:
    def test_removes_unsafe_import(self):
        result = sanitize_stylesheet("@import url(http://evil.test/x.css); body{color:red}")

        assert result.css == "body{color:red}"
        assert result.summary.removed_import_count == 1
        assert result.summary.changed

    def test_removes_behavior_declaration(self):
        result = sanitize_stylesheet("a{behavior:url(#x);color:blue}")

        assert result.css == "a{color:blue}"
        assert result.summary.removed_declaration_count == 1
        assert result.summary.rewritten_url_count == 0

    def test_keeps_preceding_semicolon_once(self):
        result = sanitize_stylesheet("a{color:blue;-moz-binding:url(x.xml#b)}")

        assert result.css == "a{color:blue;}"
        assert result.summary.removed_declaration_count == 1

    def test_removes_vendor_behavior_with_relative_url(self):
        result = sanitize_stylesheet("a{-ms-behavior:url(evil.htc);color:blue}")

        assert result.css == "a{color:blue}"
        assert result.summary.removed_declaration_count == 1

    @pytest.mark.parametrize("declaration", [
        "*-ms-behavior:url(x.htc)",
        "_behavior:url(x.htc)",
        "*behavior:url(x.htc)",
        "-MS-Behavior : url(x.htc)",
        "-ms-beh\\61vior:url(x.htc)",
        "-ms-/**/behavior:url(x.htc)",
        "-webkit-binding:url(x.xml#b)",
    ])
    def test_removes_ie_hack_and_obfuscated_behavior(self, declaration):
        result = sanitize_stylesheet(f"p{{{declaration};margin:0}}")

        assert result.css == "p{margin:0}"
        assert result.summary.removed_declaration_count == 1

    def test_behavior_like_value_is_kept(self):
        css = "p{font-family:behavior-sans;content:'-ms-behavior:x'}"
        result = sanitize_stylesheet(css)

        assert result.css == css
        assert not result.summary.changed

    def test_rewrites_imports_and_urls_preserving_local_css(self):
        css = """
          @import url("https://evil.example.com/theme.css");
          @import url("../styles/local.css");
          @import "//evil.example.com/other.css";
          .chapter {
            background-image: url("https://evil.example.com/bg.png");
            color: #222;
          }
          .local {
            background-image: url("../images/bg.png");
          }
          .legacy {
            behavior: url("behavior.htc");
          }
        """
        result = sanitize_stylesheet(css)

        assert '@import url("../styles/local.css");' in result.css
        assert "evil.example.com" not in result.css
        assert 'url("")' in result.css
        assert 'url("../images/bg.png")' in result.css
        assert "behavior:" not in result.css
        assert "color: #222;" in result.css
        assert result.summary.removed_import_count == 2
        assert result.summary.rewritten_url_count == 1
        assert result.summary.removed_declaration_count == 1

    def test_keeps_safe_string_import(self):
        css = '@import "base.css";\np{margin:0}'
        result = sanitize_stylesheet(css)

        assert result.css == css
        assert not result.summary.changed

    def test_removes_import_without_url(self):
        result = sanitize_stylesheet("@import foo; p{margin:0}")

        assert result.css == "p{margin:0}"
        assert result.summary.removed_import_count == 1

    def test_expression_removed_regardless_of_property(self):
        result = sanitize_stylesheet("p{width:expression(alert(1));height:10px}")

        assert result.css == "p{height:10px}"
        assert result.summary.removed_declaration_count == 1

    def test_obfuscated_expression_removed(self):
        result = sanitize_stylesheet("p{width:EXPR/**/ESSION (alert(1))}")

        assert "alert" not in result.css
        assert result.summary.removed_declaration_count == 1

    def test_semicolon_in_data_url_does_not_split_declaration(self):
        css = 'p{background:url("data:image/png;base64,AAAA");color:red}'
        result = sanitize_stylesheet(css)

        assert result.css == css
        assert not result.summary.changed

    def test_selector_with_colon_is_not_a_declaration(self):
        css = "a:hover{color:red}"
        assert sanitize_stylesheet(css).css == css

    def test_unterminated_url_is_blanked_when_unsafe(self):
        result = sanitize_stylesheet("p{background:url(http://evil.example.com/x.png")

        assert "evil" not in result.css
        assert result.summary.rewritten_url_count == 1

    def test_url_inside_string_is_left_alone(self):
        css = 'p::before{content:"url(http://example.com)"}'
        assert sanitize_stylesheet(css).css == css

    def test_empty_input(self):
        result = sanitize_stylesheet("")
        assert result.css == ""
        assert not result.summary.changed


class TestSanitizeDeclarationList:
    def test_sanitizes_inline_style(self):
        result = sanitize_declaration_list(
            "background-image:url(https://evil.example.com/x.png); color:#111; width:expression(alert(1));"
        )

        assert "color:#111" in result.css
        assert 'url("")' in result.css
        assert "evil.example.com" not in result.css
        assert "expression(" not in result.css
        assert result.summary.removed_declaration_count == 1
        assert result.summary.rewritten_url_count == 1

    def test_removes_vendor_behavior(self):
        result = sanitize_declaration_list("-ms-behavior:url(evil.htc)")

        assert result.css == ""
        assert result.summary.removed_declaration_count == 1

    def test_removes_ie_hacked_behavior_keeps_rest(self):
        result = sanitize_declaration_list("color:red; *-ms-behavior:url(x.htc); _behavior:url(y.htc)")

        assert result.css == "color:red;  "
        assert result.summary.removed_declaration_count == 2

    def test_does_not_touch_import_text(self):
        result = sanitize_declaration_list("color:red")

        assert result.css == "color:red"
        assert result.summary.removed_import_count == 0


class TestPathologicalInput:
    """The scanners must stay linear on adversarial input."""

    @pytest.mark.parametrize("css", [
        "url(" * 20000,
        "@import " * 20000,
        "a{" + "b:expression(" * 20000,
        '"' + "\\" * 40000,
        "/*" * 20000,
        "url('" * 20000,
        "@import url(" * 20000,
        "a{" + ";" * 50000 + "}",
        "(" * 50000 + ";" * 50000,
    ])
    def test_completes_quickly(self, css):
        start = time.perf_counter()
        sanitize_stylesheet(css)
        sanitize_declaration_list(css)
        assert time.perf_counter() - start < 5.0

    def test_repeated_unsafe_urls_all_rewritten(self):
        css = "p{background:url(http://x.test/a.png)}" * 5000
        result = sanitize_stylesheet(css)

        assert "x.test" not in result.css
        assert result.summary.rewritten_url_count == 5000
