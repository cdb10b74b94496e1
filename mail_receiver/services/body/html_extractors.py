"""
Quoted-content separation for HTML written by known mail clients.

Each extractor splits an HTML body into the new content and the elided
(quoted, signature) content. Extractors are matched against the raw HTML in
table order and the first match wins.
"""

import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag

Extraction = tuple[str, str]


def _parse(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def _remove_all(elements: Iterable[Tag]) -> str:
    """
    Detach elements from their document and return their HTML.

    Elements nested inside another selected element are only emitted once,
    as part of their outermost selected ancestor.
    """
    elements = list(elements)
    selected = {id(element) for element in elements}

    outermost = []
    seen = set()
    for element in elements:
        if id(element) in seen or any(id(parent) in selected for parent in element.parents):
            continue
        seen.add(id(element))
        outermost.append(element)

    removed = "".join(str(element) for element in outermost)
    for element in outermost:
        element.extract()
    return removed


def _with_following_siblings(soup: BeautifulSoup, selector: str) -> list[Tag]:
    """Elements matching ``selector`` and every sibling after them, in document order."""
    selected = set()
    for element in soup.select(selector):
        selected.add(id(element))
        selected.update(id(sibling) for sibling in element.find_next_siblings())
    return [element for element in soup.find_all(True) if id(element) in selected]


def extract_from_gmail(html: str) -> Extraction:
    soup = _parse(html)
    elided = _remove_all(soup.select("[class^='gmail_']"))
    return str(soup), elided


def extract_from_outlook(html: str) -> Extraction:
    soup = _parse(html)
    elided = _remove_all(_with_following_siblings(soup, "#Signature, hr, #divRplyFwdMsg"))
    return str(soup), elided


def extract_from_word(html: str) -> Extraction:
    soup = _parse(html)
    wrapper = soup.select_one(".WordSection1")
    if wrapper is None:
        return str(soup), ""

    children = [child for child in wrapper.children if isinstance(child, Tag)]
    cut = next((i for i, child in enumerate(children) if child.name not in ("p", "ul", "ol")), None)
    elided = _remove_all(children[cut:]) if cut is not None else ""
    return str(wrapper), elided


def extract_from_exchange(html: str) -> Extraction:
    soup = _parse(html)
    elided = _remove_all(soup.select("div[name='messageReplySection']"))
    body = "".join(str(section) for section in soup.select("div[name='messageBodySection']"))
    return body, elided


def extract_from_apple_mail(html: str) -> Extraction:
    soup = _parse(html)
    signatures = soup.select("#AppleMailSignature")
    if not signatures:
        return str(soup), ""

    last = signatures[-1]
    elided = _remove_all([last] + last.find_next_siblings())
    return str(soup), elided


def extract_from_mozilla(html: str) -> Extraction:
    soup = _parse(html)
    elided = _remove_all(_with_following_siblings(soup, "[class^='moz-']"))
    return str(soup), elided


@dataclass(frozen=True)
class HtmlExtractor:
    """A named detector/extractor pair."""

    name: str
    detector: re.Pattern
    extract: Callable[[str], Extraction]

    def matches(self, html: str) -> bool:
        return bool(self.detector.search(html))


HTML_EXTRACTORS = (
    HtmlExtractor("gmail", re.compile(r"""class=["']gmail_"""), extract_from_gmail),
    HtmlExtractor("outlook", re.compile(r"""id=["'](divRplyFwdMsg|Signature)["']"""), extract_from_outlook),
    HtmlExtractor("word", re.compile(r"""class=["']WordSection1["']"""), extract_from_word),
    HtmlExtractor("exchange", re.compile(r"""name=["']message(Body|Reply)Section["']"""), extract_from_exchange),
    HtmlExtractor("apple_mail", re.compile(r"""id=["']AppleMailSignature["']"""), extract_from_apple_mail),
    HtmlExtractor("mozilla", re.compile(r"""class=["']moz-"""), extract_from_mozilla),
)


def find_html_extractor(html: Optional[str]) -> Optional[HtmlExtractor]:
    """First extractor, in table order, whose detector matches ``html``."""
    if not html:
        return None
    return next((extractor for extractor in HTML_EXTRACTORS if extractor.matches(html)), None)
