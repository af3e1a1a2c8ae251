"""Single-page live mirror.

One run walks ``FETCH_SEED -> DISCOVER -> DRAIN_QUEUE -> REWRITE -> STORE``.
All per-run state (queue, visited set, asset map, counters) lives in a
:class:`CrawlContext` owned by that run. Stylesheets found on the seed page
are scanned once more for ``@import``/``url()``; nothing deeper is followed.
"""

import logging
import posixpath
import re
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Set, Tuple
from html import unescape
from urllib.parse import quote, urldefrag, urljoin, urlsplit

import requests

from .canonical import canonicalize, page_path_for_url
from .errors import BudgetExceeded, FetchTimeout, MalformedInput, UpstreamError
from .markup import bs4_parse, effective_base_url, extract_title, strip_base_tag
from .models import MirrorResult, Page, Project, asset_key
from .projects import Workspace
from .rewriter import CSS, HTML, find_references, rewrite
from .settings import Settings
from .utils import (
    DEFAULT_CONTENT_TYPE,
    MIME_TYPES,
    MIRROR_EXTENSIONS,
    build_session,
    get_extension,
    is_acceptable_asset,
    origin_of,
)

CHARSET_RE = re.compile(r"charset=[\"']?([\w.:-]+)", re.IGNORECASE)
CHUNK_SIZE = 64 * 1024

Clock = Callable[[], float]


# -------------------- URL helpers --------------------


def normalize_input_url(value: str) -> str:
    v = (value or "").strip()
    if not v:
        raise MalformedInput("URL is required")
    if "://" not in v:
        v = f"https://{v}"
    p = urlsplit(v)
    if p.scheme not in ("http", "https") or not p.netloc:
        raise MalformedInput(f"invalid URL: {value}")
    return v


def resolve_reference(raw: str, base_url: str) -> Optional[Tuple[str, str]]:
    """Resolve ``raw`` against ``base_url``; returns ``(url, fragment)``."""
    try:
        absolute = urljoin(base_url, raw.strip())
        url, frag = urldefrag(absolute)
        urlsplit(url).port  # raises on a malformed authority
    except ValueError:
        return None
    return url, frag


def decode_body(data: bytes, content_type: Optional[str]) -> str:
    m = CHARSET_RE.search(content_type or "")
    encoding = m.group(1) if m else "utf-8"
    try:
        return data.decode(encoding, errors="replace")
    except LookupError:
        return data.decode("utf-8", errors="replace")


def utf8_content_type(content_type: Optional[str], default: str = "text/css") -> str:
    base = (content_type or "").split(";")[0].strip() or default
    return f"{base}; charset=utf-8"


def read_body(
    resp, *, deadline: float, clock: Clock, max_bytes: Optional[int] = None
) -> Optional[bytes]:
    buf = bytearray()
    for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
        if not chunk:
            continue
        buf += chunk
        if max_bytes is not None and len(buf) > max_bytes:
            return None
        if clock() > deadline:
            raise FetchTimeout(getattr(resp, "url", ""), "deadline exceeded while reading body")
    return bytes(buf)


# -------------------- Crawl context --------------------


@dataclass
class CapturedStylesheet:
    url: str
    path: str
    text: str
    content_type: str


@dataclass
class CrawlContext:
    project_id: str
    started: float
    clock: Clock
    site_origin: str = ""
    base_url: str = ""
    queue: Deque[Tuple[str, int]] = field(default_factory=deque)
    visited: Set[str] = field(default_factory=set)
    asset_map: Dict[str, str] = field(default_factory=dict)
    taken_paths: Set[str] = field(default_factory=set)
    asset_keys: List[str] = field(default_factory=list)
    stylesheets: List[CapturedStylesheet] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def accepted(self) -> int:
        return len(self.asset_map)

    def elapsed(self) -> float:
        return self.clock() - self.started

    def enqueue(self, url: str, depth: int) -> None:
        self.queue.append((url, depth))

    def skip(self, url: str, reason: str) -> None:
        logging.warning("skip %s: %s", url, reason)
        self.warnings.append(f"skipped {url}: {reason}")


# -------------------- Mirror --------------------


class SiteMirror:
    def __init__(
        self,
        workspace: Workspace,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        clock: Clock = time.monotonic,
    ):
        self.ws = workspace
        self.settings = settings or workspace.settings
        self.session = session or build_session(self.settings.user_agent)
        self.clock = clock

    # FETCH_SEED

    def fetch_seed(self, url: str) -> Tuple[str, str, str]:
        s = self.settings
        deadline = self.clock() + s.page_timeout
        logging.info("GET %s", url)
        try:
            resp = self.session.get(url, timeout=s.page_timeout, stream=True, allow_redirects=True)
        except requests.Timeout as e:
            raise FetchTimeout(url, "timed out fetching the website URL") from e
        except requests.RequestException as e:
            raise UpstreamError(url, f"failed to fetch URL: {e}") from e
        try:
            if not 200 <= resp.status_code < 300:
                raise UpstreamError(url, f"failed to fetch URL ({resp.status_code})", resp.status_code)
            content_type = resp.headers.get("Content-Type", "")
            try:
                data = read_body(resp, deadline=deadline, clock=self.clock)
            except requests.RequestException as e:
                raise UpstreamError(url, f"failed to read URL: {e}") from e
            final_url = resp.url or url
        finally:
            resp.close()
        return final_url, decode_body(data or b"", content_type), content_type

    # DISCOVER

    def discover(self, ctx: CrawlContext, html: str) -> None:
        for raw in find_references(html, HTML):
            resolved = resolve_reference(unescape(raw), ctx.base_url)
            if resolved:
                ctx.enqueue(resolved[0], 0)
        logging.debug("discovered %d references on %s", len(ctx.queue), ctx.base_url)

    # DRAIN_QUEUE

    def check_budget(self, ctx: CrawlContext) -> None:
        s = self.settings
        if ctx.accepted >= s.max_asset_count:
            raise BudgetExceeded(f"asset limit reached ({s.max_asset_count})")
        if ctx.elapsed() > s.max_total_seconds:
            raise BudgetExceeded(f"time budget exhausted ({s.max_total_seconds}s)")

    def drain(self, ctx: CrawlContext) -> None:
        while ctx.queue:
            try:
                self.check_budget(ctx)
            except BudgetExceeded as e:
                logging.info("%s after %d assets in %.2fs", e, ctx.accepted, ctx.elapsed())
                ctx.warnings.append(f"{e}, {len(ctx.queue)} references not fetched")
                break
            url, depth = ctx.queue.popleft()
            if url in ctx.visited:
                continue
            ctx.visited.add(url)
            if urlsplit(url).scheme not in ("http", "https"):
                continue
            ext = get_extension(urlsplit(url).path)
            if ext not in MIRROR_EXTENSIONS:
                continue
            self.capture(ctx, url, ext, depth)

    def capture(self, ctx: CrawlContext, url: str, ext: str, depth: int) -> None:
        s = self.settings
        path = canonicalize(url, ctx.site_origin)
        if path in ctx.taken_paths:
            ctx.skip(url, f"path {path} already captured")
            return

        deadline = self.clock() + s.asset_timeout
        try:
            resp = self.session.get(url, timeout=s.asset_timeout, stream=True, allow_redirects=True)
        except requests.Timeout:
            ctx.skip(url, "timed out")
            return
        except requests.RequestException as e:
            ctx.skip(url, f"request failed: {e}")
            return
        try:
            if not 200 <= resp.status_code < 300:
                ctx.skip(url, f"HTTP {resp.status_code}")
                return
            cl = resp.headers.get("Content-Length")
            if cl and cl.isdigit() and int(cl) > s.max_asset_bytes:
                ctx.skip(url, f"too large ({cl} bytes)")
                return
            content_type = resp.headers.get("Content-Type") or MIME_TYPES.get(ext, DEFAULT_CONTENT_TYPE)
            if not is_acceptable_asset(ext, content_type):
                ctx.skip(url, f"unacceptable content type {content_type}")
                return
            try:
                data = read_body(resp, deadline=deadline, clock=self.clock, max_bytes=s.max_asset_bytes)
            except FetchTimeout:
                ctx.skip(url, "timed out")
                return
            except requests.RequestException as e:
                ctx.skip(url, f"read failed: {e}")
                return
            if data is None:
                ctx.skip(url, f"larger than {s.max_asset_bytes} bytes")
                return
        finally:
            resp.close()

        key = asset_key(ctx.project_id, path)
        is_css = ext == "css" or content_type.lower().startswith("text/css")
        if is_css:
            text = decode_body(data, content_type)
            # stored re-encoded as utf-8 after rewriting
            ctx.stylesheets.append(CapturedStylesheet(url, path, text, utf8_content_type(content_type)))
            if depth == 0:
                for raw in find_references(text, CSS):
                    resolved = resolve_reference(raw, url)
                    if resolved:
                        ctx.enqueue(resolved[0], depth + 1)
        else:
            self.ws.content.write(key, data, content_type)

        ctx.asset_map[url] = path
        ctx.taken_paths.add(path)
        ctx.asset_keys.append(key)
        logging.info("captured %s -> %s", url, path)

    # REWRITE

    def rewrite_page(self, ctx: CrawlContext, html: str) -> str:
        def resolve(ref: str) -> Optional[str]:
            resolved = resolve_reference(unescape(ref), ctx.base_url)
            if not resolved or resolved[0] not in ctx.asset_map:
                return None
            url, frag = resolved
            return "/" + quote(ctx.asset_map[url]) + (f"#{frag}" if frag else "")

        return rewrite(html, HTML, resolve)

    def rewrite_stylesheet(self, ctx: CrawlContext, sheet: CapturedStylesheet) -> str:
        sheet_dir = posixpath.dirname(sheet.path) or "."

        def resolve(ref: str) -> Optional[str]:
            resolved = resolve_reference(ref, sheet.url)
            if not resolved or resolved[0] not in ctx.asset_map:
                return None
            url, frag = resolved
            rel = posixpath.relpath(ctx.asset_map[url], sheet_dir)
            return quote(rel) + (f"#{frag}" if frag else "")

        return rewrite(sheet.text, CSS, resolve)

    # STORE

    def store(self, ctx: CrawlContext, html: str, title: str, final_url: str) -> MirrorResult:
        for sheet in ctx.stylesheets:
            key = asset_key(ctx.project_id, sheet.path)
            self.ws.content.write(key, self.rewrite_stylesheet(ctx, sheet), sheet.content_type)

        page_path = page_path_for_url(final_url)
        page_key = asset_key(ctx.project_id, page_path)
        self.ws.content.write(page_key, html, "text/html")
        page = Page(name=title, path=page_path, asset_key=page_key)
        return MirrorResult(
            page=page,
            asset_keys=ctx.asset_keys + [page_key],
            warnings=ctx.warnings,
            source_url=final_url,
        )

    def mirror(self, seed_url: str, project_id: str) -> MirrorResult:
        ctx = CrawlContext(project_id=project_id, started=self.clock(), clock=self.clock)
        final_url, html, _ = self.fetch_seed(normalize_input_url(seed_url))
        ctx.site_origin = origin_of(final_url)

        soup = bs4_parse(html)
        ctx.base_url = effective_base_url(soup, final_url)
        title = extract_title(soup) or (urlsplit(final_url).hostname or final_url)
        html = strip_base_tag(html)

        self.discover(ctx, html)
        self.drain(ctx)
        rewritten = self.rewrite_page(ctx, html)
        result = self.store(ctx, rewritten, title, final_url)
        logging.info(
            "mirrored %s: %d assets in %.2fs (%d warnings)",
            final_url,
            ctx.accepted,
            ctx.elapsed(),
            len(ctx.warnings),
        )
        return result

    def mirror_project(
        self,
        seed_url: str,
        name: str = "",
        client_name: str = "",
        description: str = "",
    ) -> Tuple[Project, List[str]]:
        project = self.ws.new_project(name, client_name, description, project_type="url")
        result = self.mirror(seed_url, project.id)
        project.source_url = result.source_url
        project.pages = [result.page]
        project.asset_keys = list(result.asset_keys)
        return self.ws.publish(project), result.warnings
