"""Map resolved resource URLs onto stable paths inside a project namespace."""

from urllib.parse import unquote, urlsplit

from .utils import EXT_RE, origin_of, short_h


def add_hash_suffix(path: str, url: str) -> str:
    """Insert a short digest of ``url`` before the extension of ``path``."""
    h = short_h(url)
    m = EXT_RE.search(path)
    if not m:
        return f"{path}__{h}"
    return f"{path[: m.start()]}__{h}.{m.group(1)}"


def _clean_segments(path: str) -> str:
    segs = [s for s in path.split("/") if s not in (".", "..")]
    return "/".join(segs).lstrip("/")


def canonicalize(absolute_url: str, site_origin: str) -> str:
    """Return the project-relative storage path for ``absolute_url``.

    Same-origin resources keep their URL path; everything else lands under
    ``external/{hostname}/``. Percent-escapes in the path are decoded, the
    same form archive entries are stored under. A query string or fragment
    adds an 8 character hex digest of the full URL so query variants never
    share a path.
    """
    u = urlsplit(absolute_url)
    same = origin_of(absolute_url) == origin_of(site_origin)

    path = unquote(u.path) or "/"
    if path.endswith("/"):
        path += "index"
    path = _clean_segments(path)
    if not path:
        path = "index"
    if u.query or u.fragment:
        path = add_hash_suffix(path, absolute_url)
    if same:
        return path
    host = (u.hostname or "unknown").lower()
    return f"external/{host}/{path}"


def page_path_for_url(page_url: str) -> str:
    u = urlsplit(page_url)
    path = unquote(u.path) or "/"
    if path.endswith("/"):
        path += "index.html"
    elif not EXT_RE.search(path):
        path += "/index.html"
    path = _clean_segments(path) or "index.html"
    if u.query or u.fragment:
        path = add_hash_suffix(path, page_url)
    return path
