import pytest
from bs4 import BeautifulSoup

from stackrite.cleaner import StackCleaner
from stackrite.colors import Color4Config
from stackrite.config import CleanerConfig, ColorFormat
from stackrite.errors import ConfigurationError
from stackrite.html import html_cleaner, html_traceback, stylesheet
from tests.pysamples import Inventory, apply
from tests.samples import build_shop, trace_of


def restock_error():
    try:
        Inventory().restock("apple")
    except KeyError as e:
        return e


def soup_of(obj, **kwargs):
    return BeautifulSoup(str(html_traceback(obj, **kwargs)), "html.parser")


def test_html_traceback_structure():
    soup = soup_of(restock_error())
    outer = soup.find("div", class_="stackrite")
    assert outer is not None
    assert ".st_keyword" in outer.find("style").text
    assert outer.find("h3").text == "KeyError: 'apple'"
    assert outer.find("span", class_="exctype").text.startswith("KeyError:")

    frames = outer.find("div", class_="st_bkgr")
    paragraphs = frames.find_all("p")
    lines = [p.text for p in paragraphs if p.text.startswith(" at ")]
    assert len(lines) == 2
    assert lines[-1].endswith("Inventory.restock(str name, int count)")


def test_roles_as_classes():
    soup = soup_of(restock_error())
    methods = [s.text for s in soup.find_all("span", class_="st_method")]
    assert "restock" in methods
    assert soup.find("span", class_="st_flow_keyword").text == " at "


def test_generic_brackets_escaped():
    shop = build_shop()
    soup = soup_of(trace_of(shop.map), include_css=False)
    assert soup.find("style") is None
    assert "Func<Order, TResult> selector" in soup.text


def test_anonymous_body():
    try:
        apply([0])
    except ZeroDivisionError as e:
        soup = soup_of(e)
    assert "{ ... }" in soup.text
    assert soup.find("span", class_="st_extra_data") is not None


def test_current_exception():
    try:
        Inventory().restock("pear")
    except KeyError:
        html = str(html_traceback())
    assert "KeyError:" in html


def test_inline_styles():
    cleaner = html_cleaner(Color4Config(), html_use_class_names=False)
    soup = soup_of(restock_error(), cleaner=cleaner)
    assert soup.find("style") is None
    span = soup.find("span", style=True)
    assert span["style"].startswith("color:#")


def test_requires_html_cleaner():
    with pytest.raises(ConfigurationError):
        html_traceback(restock_error(), cleaner=StackCleaner())


def test_stylesheet_uses_table_colors():
    css = stylesheet()
    assert ".st_bkgr {background-color: #1e1e1e;" in css
    assert ".st_keyword {color: #569cd6}" in css
    assert ".st_bkgr p {margin: 0; white-space: pre}" in css


def test_html_cleaner_defaults():
    config = html_cleaner().config
    assert config.color_format is ColorFormat.HTML
    assert config.html_use_class_names
    assert config.frozen


def test_plain_cleaner_string():
    cleaner = StackCleaner(
        CleanerConfig(color_format=ColorFormat.HTML, html_write_outer_div=False)
    )
    html = cleaner.get_string(restock_error())
    soup = BeautifulSoup(html, "html.parser")
    assert soup.find("div") is None
    assert len(soup.find_all("p")) >= 2
