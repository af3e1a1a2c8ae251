import re
from typing import Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

BASE_TAG_RE = re.compile(r"<base\b[^>]*>", re.IGNORECASE)


def bs4_parse(html: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(html, "lxml")
    except Exception:
        return BeautifulSoup(html, "html.parser")


def effective_base_url(soup: BeautifulSoup, fallback: str) -> str:
    tag = soup.find("base", href=True)
    if tag and tag.get("href"):
        return urljoin(fallback, tag["href"])
    return fallback


def extract_title(soup: BeautifulSoup) -> Optional[str]:
    if soup.title and soup.title.string:
        title = soup.title.string.strip()
        return title or None
    return None


def strip_base_tag(html: str) -> str:
    return BASE_TAG_RE.sub("", html, count=1)


def has_body_content(html: str) -> bool:
    """True when the document has a ``<body>`` whose trimmed inner content is non-empty."""
    if not html:
        return False
    # html.parser does not synthesize a <body> for fragments
    soup = BeautifulSoup(html, "html.parser")
    body = soup.find("body")
    if body is None:
        return False
    return bool(body.decode_contents().strip())
