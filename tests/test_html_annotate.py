"""Tests for HTML rewriting and binding-attribute annotation."""

import pytest
from bs4 import BeautifulSoup, Comment

from llweb_packager.assets import BLOCKED_LINK_SUBSTRINGS, BODY_MARKUP, HEAD_MARKUP
from llweb_packager.records import BindingRecord, RecordIndex
from llweb_packager.rewrite.html_annotate import (
    FORMAT_TABLE,
    HtmlAnnotator,
    collect_markers,
    format_attribute,
)


def _annotator(*records):
    return HtmlAnnotator(
        RecordIndex(records),
        head_markup=HEAD_MARKUP,
        body_markup=BODY_MARKUP,
        blocked_link_substrings=BLOCKED_LINK_SUBSTRINGS,
    )


def _page(body, head=""):
    return f"<!DOCTYPE html><html><head>{head}</head><body>{body}</body></html>"


def _annotate(body, *records, head=""):
    doc = _annotator(*records).annotate(_page(body, head))
    return doc, BeautifulSoup(doc.html, "html.parser")


class TestFormatAttribute:
    """Tests for the CSV format token table."""

    @pytest.mark.parametrize("token,expected", sorted(FORMAT_TABLE.items()))
    def test_known_tokens(self, token, expected):
        assert format_attribute(token) == expected

    def test_empty_token_gives_empty_attribute(self):
        assert format_attribute("") == ""

    @pytest.mark.parametrize("token", ["abc", "XXX.Y", "%.1D", " xxx.y"])
    def test_unknown_token_gives_none(self, token):
        assert format_attribute(token) is None


class TestBindings:
    """Tests for per-element-kind attribute rules."""

    def test_text_input_with_format(self):
        doc, soup = _annotate('<input nv="A1">', BindingRecord("Temp", "A1", "xxx.y"))
        el = soup.find("input")
        assert el["data-llweb-par"] == "A1"
        assert el["data-llweb-refresh"] == "true"
        assert el["id"] == "txt-ctrl-A1"
        assert el["data-llweb-format"] == "%.1D"
        assert doc.stats.elements_processed == 1
        assert doc.stats.attributes_added == 3
        assert 'data-llweb-par="A1"' in doc.html
        assert 'data-llweb-format="%.1D"' in doc.html

    def test_text_input_unknown_format_omits_attribute(self):
        doc, soup = _annotate('<input nv="A1">', BindingRecord("Temp", "A1", "weird"))
        el = soup.find("input")
        assert not el.has_attr("data-llweb-format")
        assert doc.stats.attributes_added == 3

    def test_text_input_empty_format_emits_empty_attribute(self):
        doc, soup = _annotate('<input nv="A1">', BindingRecord("Temp", "A1", ""))
        assert soup.find("input")["data-llweb-format"] == ""
        assert 'data-llweb-format=""' in doc.html

    def test_checkbox(self):
        doc, soup = _annotate(
            '<input type="checkbox" nv="C1">', BindingRecord("Pump", "C1", "xxx.y")
        )
        el = soup.find("input")
        assert el["id"] == "chk-ctrl-C1"
        assert el["data-llweb-par"] == "C1"
        assert not el.has_attr("data-llweb-format")
        assert doc.stats.attributes_added == 3

    @pytest.mark.parametrize(
        "value,suffix",
        [("true", "1"), ("TRUE", "1"), ("1", "1"), ("false", "2"), ("0", "2"), ("", "2")],
    )
    def test_radio(self, value, suffix):
        doc, soup = _annotate(
            f'<input type="radio" nv="A2" value="{value}">',
            BindingRecord("Mode", "A2", ""),
        )
        el = soup.find("input")
        assert el["id"] == f"rad-ctrl-A2-{suffix}"
        assert el["name"] == "rad-A2"
        assert el["data-llweb-refresh"] == "true"
        assert doc.stats.attributes_added == 4

    def test_radio_without_value(self):
        _, soup = _annotate('<input type="radio" nv="A2">', BindingRecord("Mode", "A2", ""))
        assert soup.find("input")["id"] == "rad-ctrl-A2-2"

    def test_select(self):
        doc, soup = _annotate(
            '<select nv="S1"><option>1</option></select>', BindingRecord("Sel", "S1", "")
        )
        el = soup.find("select")
        assert el["id"] == "sel-ctrl-S1"
        assert el["data-llweb-par"] == "S1"
        assert doc.stats.attributes_added == 3

    @pytest.mark.parametrize(
        "value,expected_id",
        [("true", "btn-ctrl-B1-1"), ("false", "btn-ctrl-B1-2")],
    )
    def test_button(self, value, expected_id):
        doc, soup = _annotate(
            f'<button nv="B1" value="{value}">Go</button>', BindingRecord("Btn", "B1", "")
        )
        assert soup.find("button")["id"] == expected_id
        assert doc.stats.attributes_added == 3

    def test_button_other_value_gets_no_id_but_nominal_count(self):
        doc, soup = _annotate(
            '<button nv="B1" value="toggle">Go</button>', BindingRecord("Btn", "B1", "")
        )
        el = soup.find("button")
        assert not el.has_attr("id")
        assert el["data-llweb-par"] == "B1"
        assert el["data-llweb-refresh"] == "true"
        assert doc.stats.attributes_added == 3

    def test_existing_id_replaced(self):
        _, soup = _annotate('<input id="old" nv="A1">', BindingRecord("T", "A1", "xx.yy"))
        assert soup.find("input")["id"] == "txt-ctrl-A1"

    def test_marker_case_insensitive_uses_record_address(self):
        _, soup = _annotate('<input nv="a1">', BindingRecord("Temp", "A1", ""))
        el = soup.find("input")
        assert el["data-llweb-par"] == "A1"
        assert el["id"] == "txt-ctrl-A1"
        assert el["nv"] == "a1"

    def test_unmatched_marker_untouched(self):
        doc, soup = _annotate('<input nv="ZZ">', BindingRecord("Temp", "A1", ""))
        el = soup.find("input")
        assert not el.has_attr("data-llweb-par")
        assert doc.stats.elements_processed == 0
        assert doc.stats.attributes_added == 0

    def test_other_element_kind_counted_without_attributes(self):
        doc, soup = _annotate('<div nv="A1">x</div>', BindingRecord("Temp", "A1", ""))
        assert not soup.find("div").has_attr("data-llweb-par")
        assert doc.stats.elements_processed == 1
        assert doc.stats.attributes_added == 0

    def test_counts_accumulate(self):
        doc, _ = _annotate(
            '<input nv="A1"><input type="radio" nv="A2" value="true">'
            '<input type="radio" nv="A2" value="false"><input nv="missing">',
            BindingRecord("Temp", "A1", "xxx.y"),
            BindingRecord("Mode", "A2", ""),
        )
        assert doc.stats.elements_processed == 3
        assert doc.stats.attributes_added == 3 + 4 + 4


class TestDocumentRewrite:
    """Tests for path rewriting, link removal and fixed injections."""

    def test_no_markers_yields_zero_stats(self):
        doc, soup = _annotate('<p class="lead">Hello</p>')
        assert doc.stats.elements_processed == 0
        assert doc.stats.attributes_added == 0
        assert soup.find("p", class_="lead").get_text() == "Hello"

    def test_doctype_prefix(self):
        doc, _ = _annotate("<p>x</p>")
        assert doc.html.startswith("<!DOCTYPE html>\n<html>")
        assert doc.html.count("<!DOCTYPE") == 1

    def test_public_paths_rewritten(self):
        body = (
            '<img src="public/a.png">'
            '<a href="public/doc.pdf">doc</a>'
            '<table background="public/bg.png"></table>'
            '<div data-background="public/hero.jpg"></div>'
            '<div style="background: url(public/b.png)"></div>'
            '<script src="public/app.js"></script>'
        )
        head = "<style>.x { background: url('public/c.png'); }</style>"
        doc, soup = _annotate(body, head=head)
        assert "public/" not in doc.html
        assert soup.find("img")["src"] == "img/a.png"
        assert soup.find("a")["href"] == "img/doc.pdf"
        assert soup.find("table")["background"] == "img/bg.png"
        assert soup.find("div", attrs={"data-background": True})["data-background"] == "img/hero.jpg"
        assert "img/c.png" in soup.find("style").string

    def test_other_attributes_not_rewritten(self):
        doc, _ = _annotate('<div title="public/notes"></div>')
        assert 'title="public/notes"' in doc.html

    def test_blocked_links_removed(self):
        head = (
            '<link rel="stylesheet" href="https://fonts.googleapis.com/css?family=Roboto">'
            '<link rel="stylesheet" href="https://unpkg.com/lib@1/dist/lib.css">'
            '<link rel="stylesheet" href="style.css">'
        )
        doc, soup = _annotate("", head=head)
        hrefs = [link.get("href") for link in soup.find_all("link")]
        assert "style.css" in hrefs
        assert not any("googleapis" in h or "unpkg" in h for h in hrefs)
        assert "../style/common.css" in hrefs

    def test_head_injection_is_last(self):
        _, soup = _annotate("", head="<title>T</title>")
        scripts = soup.head.find_all("script")
        assert [s.get("src") for s in scripts] == [
            "LLWebServerExtended.js",
            "../js/base.js",
            "ew-log-viewer.js",
            "envelope-cartesian.js",
        ]
        assert soup.head.find("title") is not None
        comments = [c.strip() for c in soup.head.find_all(string=lambda s: isinstance(s, Comment))]
        assert comments == ["custom code 1", "custom code 2"]

    def test_body_injection_is_last(self):
        _, soup = _annotate("<p>content</p>")
        scripts = soup.body.find_all("script")
        assert len(scripts) == 3
        assert "LLWebServer.AutoRefreshStart(1000);" in scripts[0].string
        assert "showLoginStatus();" in scripts[0].string
        assert 'localStorage.setItem("showNeutralNavbar", true);' in scripts[0].string
        assert "DOMContentLoaded" in scripts[1].string
        assert scripts[2]["src"] == "scriptcustom.js"
        assert scripts[2]["defer"] == ""
        assert soup.body.find("p").find_next("script") is scripts[0]

    def test_injection_identical_across_documents(self):
        annotator = _annotator()
        first = BeautifulSoup(annotator.annotate(_page("<p>a</p>")).html, "html.parser")
        second = BeautifulSoup(
            annotator.annotate(_page("<div><span>b</span></div>")).html, "html.parser"
        )
        assert str(first.head) == str(second.head)
        assert first.body.find_all("script") == second.body.find_all("script")

    def test_fragment_without_head_or_body(self):
        doc, soup = _annotate_raw('<p>hello</p><input nv="A1">', BindingRecord("T", "A1", ""))
        assert soup.head is not None
        assert soup.body is not None
        assert soup.body.find("p").get_text() == "hello"
        assert soup.head.find("script", src="LLWebServerExtended.js") is not None
        assert doc.stats.elements_processed == 1

    def test_document_without_body(self):
        doc, soup = _annotate_raw(
            "<html><head><title>T</title></head><p>x</p></html>"
        )
        assert soup.head.find("title") is not None
        assert soup.body.find("p") is not None
        assert soup.body.find("script", src="scriptcustom.js") is not None

    def test_content_after_closing_html_kept_in_body(self):
        doc, soup = _annotate_raw(
            '<html><head></head><body><p>a</p></body></html>\n<p>tail</p><input nv="A1">',
            BindingRecord("T", "A1", ""),
        )
        assert "<p>tail</p>" in doc.html
        paragraphs = [p.get_text() for p in soup.body.find_all("p")]
        assert paragraphs == ["a", "tail"]
        field = soup.body.find("input")
        assert field["data-llweb-par"] == "A1"
        assert doc.stats.elements_processed == 1
        assert doc.stats.attributes_added == 3
        assert soup.body.find_all("script")[-1]["src"] == "scriptcustom.js"
        assert field.find_next("script") is soup.body.find_all("script")[0]

    def test_content_before_html_moved_inside(self):
        doc, soup = _annotate_raw(
            '<!DOCTYPE html><meta charset="utf-8"><title>T</title>'
            '<p>lead</p><html><head></head><body><p>main</p></body></html>'
        )
        assert doc.html.count("<!DOCTYPE") == 1
        assert soup.head.find("meta")["charset"] == "utf-8"
        assert soup.head.find("title").get_text() == "T"
        assert soup.head.find("meta").find_next("script")["src"] == "LLWebServerExtended.js"
        paragraphs = [p.get_text() for p in soup.body.find_all("p")]
        assert paragraphs == ["lead", "main"]

    def test_body_without_html_not_nested(self):
        _, soup = _annotate_raw("<title>T</title><body><p>x</p></body>")
        assert len(soup.find_all("body")) == 1
        assert soup.head.find("title").get_text() == "T"
        assert soup.body.find("p").get_text() == "x"

    def test_content_after_body_inside_html_kept(self):
        _, soup = _annotate_raw(
            "<html><head></head><body><p>a</p></body><p>after</p></html>"
        )
        paragraphs = [p.get_text() for p in soup.body.find_all("p")]
        assert paragraphs == ["a", "after"]
        assert soup.body.find_all("script")[-1]["src"] == "scriptcustom.js"


def _annotate_raw(text, *records):
    doc = _annotator(*records).annotate(text)
    return doc, BeautifulSoup(doc.html, "html.parser")


class TestCollectMarkers:
    """Tests for marker inspection."""

    def test_markers_in_document_order(self):
        markers = collect_markers(
            _page('<input nv="A1"><select nv="S1"></select><div nv="X"></div>')
        )
        assert markers == [("A1", "input"), ("S1", "select"), ("X", "div")]

    def test_no_markers(self):
        assert collect_markers(_page("<p>x</p>")) == []
