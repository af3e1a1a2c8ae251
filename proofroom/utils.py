import hashlib
import posixpath
import re
from typing import Dict, Optional
from urllib.parse import urlsplit

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

# -------------------- Content types --------------------

MIME_TYPES: Dict[str, str] = {
    "css": "text/css",
    "js": "application/javascript",
    "mjs": "application/javascript",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "webp": "image/webp",
    "ico": "image/x-icon",
    "woff": "font/woff",
    "woff2": "font/woff2",
    "ttf": "font/ttf",
    "eot": "application/vnd.ms-fontobject",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"

# extensions a live mirror may capture
MIRROR_EXTENSIONS = frozenset(MIME_TYPES)
# extensions an uploaded archive may contribute as assets
ARCHIVE_EXTENSIONS = frozenset(
    {"css", "js", "jpg", "jpeg", "png", "gif", "svg", "webp", "ico", "woff", "woff2", "ttf", "eot"}
)
PAGE_EXTENSIONS = frozenset({"html", "htm"})
TEXT_EXTENSIONS = frozenset({"css", "js", "mjs", "svg"})

ACCEPTABLE_TYPE_PREFIXES = (
    "text/css",
    "application/javascript",
    "text/javascript",
    "image/",
    "font/",
)

SKIPPABLE_PREFIXES = ("#", "data:", "mailto:", "tel:", "javascript:")
ABSOLUTE_PREFIXES = ("http://", "https://", "//")

EXT_RE = re.compile(r"\.([a-z0-9]+)$", re.IGNORECASE)
SLUG_RE = re.compile(r"[^a-z0-9]+")


def get_extension(path: str) -> str:
    m = EXT_RE.search(path or "")
    return m.group(1).lower() if m else ""


def content_type_for(path: str) -> str:
    return MIME_TYPES.get(get_extension(path), DEFAULT_CONTENT_TYPE)


def extension_for_type(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    ct = content_type.split(";")[0].strip().lower()
    for ext, mime in MIME_TYPES.items():
        if mime == ct:
            return ext
    return None


def is_acceptable_asset(ext: str, content_type: Optional[str]) -> bool:
    if ext and ext in MIRROR_EXTENSIONS:
        return True
    ct = (content_type or "").lower()
    return bool(ct) and ct.startswith(ACCEPTABLE_TYPE_PREFIXES)


def is_skippable_url(value: Optional[str], *, skip_absolute: bool = False) -> bool:
    if not value:
        return True
    v = value.strip()
    if not v or v.lower().startswith(SKIPPABLE_PREFIXES):
        return True
    if skip_absolute and v.lower().startswith(ABSOLUTE_PREFIXES):
        return True
    return False


def short_h(url: str) -> str:
    return hashlib.sha1(url.encode("utf-8")).hexdigest()[:8]


def split_suffix(value: str):
    """Split ``path?query#frag`` into ``(path, "?query#frag")``."""
    m = re.search(r"[?#]", value)
    if not m:
        return value, ""
    return value[: m.start()], value[m.start() :]


def slugify(value: str, fallback: str = "page") -> str:
    s = SLUG_RE.sub("-", (value or "").strip().lower()).strip("-")
    return s or fallback


def basename(path: str) -> str:
    return posixpath.basename(path.rstrip("/"))


def origin_of(url: str) -> str:
    p = urlsplit(url)
    return f"{p.scheme}://{p.netloc}".lower()


# -------------------- HTTP --------------------


def build_session(user_agent: str, retries: int = 0) -> requests.Session:
    s = requests.Session()
    retry = Retry(
        total=retries,
        backoff_factor=0.2,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods={"GET", "HEAD"},
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=8, pool_maxsize=8)
    s.mount("http://", adapter)
    s.mount("https://", adapter)
    s.headers.update(
        {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        }
    )
    return s
