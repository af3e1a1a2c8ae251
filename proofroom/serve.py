"""Serve-time rewriting of stored pages into fetchable API URLs."""

import posixpath
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import quote, unquote

from .errors import PageNotFound
from .models import Project, asset_key
from .projects import Workspace
from .rewriter import HTML, rewrite
from .settings import Settings
from .utils import basename, split_suffix

PAGE_SUFFIXES = (".html", ".htm")


def encode_path(path: str) -> str:
    return "/".join(quote(seg, safe="") for seg in path.split("/"))


@dataclass
class AssetLookup:
    page_dir: str
    by_path: Dict[str, str] = field(default_factory=dict)
    by_name: Dict[str, str] = field(default_factory=dict)

    def find(self, clean: str, root_relative: bool) -> Optional[str]:
        if self.page_dir and not root_relative:
            joined = posixpath.normpath(posixpath.join(self.page_dir, clean))
            if joined in self.by_path:
                return self.by_path[joined]
        if clean in self.by_path:
            return self.by_path[clean]
        name = basename(clean)
        if self.page_dir:
            qualified = f"{self.page_dir}/{name}"
            if qualified in self.by_path:
                return self.by_path[qualified]
        return self.by_name.get(name)


class ServeTimeResolver:
    def __init__(self, workspace: Workspace, base_url: str = "", settings: Optional[Settings] = None):
        self.ws = workspace
        self.settings = settings or workspace.settings
        self.base_url = base_url.rstrip("/")

    def asset_url(self, project_id: str, path: str) -> str:
        url = f"{self.base_url}{self.settings.api_prefix}/asset/{project_id}/{encode_path(path)}"
        if self.settings.api_version:
            url += f"?v={self.settings.api_version}"
        return url

    def page_url(self, project_id: str, path: str) -> str:
        return f"{self.base_url}{self.settings.api_prefix}/page/{project_id}/{encode_path(path)}"

    def build_lookup(self, project: Project, page_path: str) -> AssetLookup:
        lookup = AssetLookup(page_dir=posixpath.dirname(page_path))
        for key in project.asset_keys:
            rel = project.relative_path(key)
            url = self.asset_url(project.id, rel)
            lookup.by_path.setdefault(rel, url)
            lookup.by_name.setdefault(basename(rel), url)
        return lookup

    def rewrite_page(self, project_id: str, html: str, lookup: AssetLookup) -> str:
        def resolve(ref: str) -> Optional[str]:
            path_only, suffix = split_suffix(ref)
            root_relative = path_only.startswith("/")
            clean = unquote(path_only)
            while clean.startswith("./"):
                clean = clean[2:]
            clean = clean.lstrip("/")
            if not clean:
                return None
            if clean.lower().endswith(PAGE_SUFFIXES):
                if lookup.page_dir and not root_relative:
                    clean = posixpath.normpath(posixpath.join(lookup.page_dir, clean))
                return self.page_url(project_id, clean) + suffix
            url = lookup.find(clean, root_relative)
            if url is None:
                return None
            if suffix and "?" in url and suffix.startswith("?"):
                return url + "&" + suffix[1:]
            return url + suffix

        return rewrite(html, HTML, resolve, skip_absolute=True)

    def resolve_for_serving(self, project_id: str, page_path: str) -> str:
        project = self.ws.load(project_id)
        key = asset_key(project_id, page_path)
        html = self.ws.content.read_text(key)
        if html is None:
            raise PageNotFound(key)
        return self.rewrite_page(project_id, html, self.build_lookup(project, page_path))
