import pytest

from proofroom.rewriter import CSS, HTML, find_references, rewrite


def upper(ref):
    return ref.upper()


# ---------------------------------------------------------------------------
# html mode
# ---------------------------------------------------------------------------
class TestHtmlMode:
    def test_text_without_references_is_unchanged(self):
        text = "<p>Plain text, no links at all. src is a word here.</p>"
        assert rewrite(text, HTML, upper) == text

    def test_src_and_href_both_quote_styles(self):
        text = """<img src="a.png"><a href='b.html'>x</a>"""
        assert rewrite(text, HTML, upper) == """<img src="A.PNG"><a href='B.HTML'>x</a>"""

    def test_attribute_names_case_insensitive(self):
        assert rewrite('<IMG SRC="a.png">', HTML, upper) == '<IMG SRC="A.PNG">'

    def test_skippable_references_never_resolved(self):
        text = (
            '<a href="#top">t</a><img src="data:image/png;base64,AAA=">'
            '<a href="mailto:x@y.com">m</a><a href="tel:+100">p</a>'
            '<a href="javascript:void(0)">j</a>'
        )
        seen = []

        def resolve(ref):
            seen.append(ref)
            return "REPLACED"

        assert rewrite(text, HTML, resolve) == text
        assert seen == []

    def test_none_leaves_reference_alone(self):
        text = '<img src="a.png"><img src="b.png">'
        out = rewrite(text, HTML, lambda r: "x.png" if r == "b.png" else None)
        assert out == '<img src="a.png"><img src="x.png">'

    def test_srcset_preserves_descriptors(self):
        text = '<img srcset="a.png 1x, b.png 2x">'
        assert rewrite(text, HTML, lambda r: "/s/" + r) == '<img srcset="/s/a.png 1x, /s/b.png 2x">'

    def test_srcset_data_uri_candidate_kept_whole(self):
        seen = []

        def resolve(ref):
            seen.append(ref)
            return "/s/" + ref

        text = '<img srcset="data:image/png;base64,AAA= 1x, b.png 2x">'
        out = rewrite(text, HTML, resolve)
        assert out == '<img srcset="data:image/png;base64,AAA= 1x, /s/b.png 2x">'
        assert seen == ["b.png"]

    def test_srcset_without_spaces_after_commas(self):
        text = '<img srcset="a.png 1x,b.png 2x">'
        assert rewrite(text, HTML, lambda r: "/s/" + r) == '<img srcset="/s/a.png 1x,/s/b.png 2x">'

    def test_inline_style_url(self):
        text = """<div style="background:url('bg.png')"></div>"""
        assert rewrite(text, HTML, lambda r: "/x/" + r) == """<div style="background:url('/x/bg.png')"></div>"""

    def test_style_block_url_unquoted(self):
        text = "<style>body{background:url(img/bg.jpg)}</style>"
        assert rewrite(text, HTML, upper) == "<style>body{background:url(IMG/BG.JPG)}</style>"

    def test_single_pass(self):
        mapping = {"a.png": "b.png", "b.png": "c.png"}
        assert rewrite('<img src="a.png">', HTML, mapping.get) == '<img src="b.png">'

    def test_surrounding_whitespace_kept(self):
        assert rewrite('<img src=" a.png ">', HTML, upper) == '<img src=" A.PNG ">'

    def test_absolute_skipped_on_request(self):
        text = '<img src="https://cdn.example.com/x.png"><img src="//cdn.example.com/y.png">'
        assert rewrite(text, HTML, upper, skip_absolute=True) == text
        assert "HTTPS://CDN.EXAMPLE.COM/X.PNG" in rewrite(text, HTML, upper)

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            rewrite("", "xml", upper)


# ---------------------------------------------------------------------------
# css mode
# ---------------------------------------------------------------------------
class TestCssMode:
    def test_imports_and_urls(self):
        css = '@import "reset.css";\n@import url(theme.css);\nh1{background:url("img/a.png")}'
        out = rewrite(css, CSS, lambda r: "/p/" + r)
        assert out == '@import "/p/reset.css";\n@import url(/p/theme.css);\nh1{background:url("/p/img/a.png")}'

    def test_html_attributes_ignored(self):
        css = 'a[href="x.html"]{color:red}'
        assert rewrite(css, CSS, upper) == css


class TestFindReferences:
    def test_document_order(self):
        text = '<link href="s.css"><img srcset="a.png 1x, b.png 2x"><a href="#x">x</a><img src="c.png">'
        assert find_references(text, HTML) == ["s.css", "a.png", "b.png", "c.png"]

    def test_srcset_data_uri_not_split(self):
        text = '<img srcset="data:image/gif;base64,R0lG,ODl 1x, b.png 2x">'
        assert find_references(text, HTML) == ["b.png"]

    def test_css(self):
        assert find_references("@import 'a.css'; p{background:url(b.gif)}", CSS) == ["a.css", "b.gif"]
