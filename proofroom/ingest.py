"""Archive and image-mockup ingestion.

Archive entries are classified one at a time: metadata and unsupported files
are dropped, ``.html``/``.htm`` entries become pages only when their body has
content, and allow-listed assets are stored under their archive path.
"""

import json
import logging
import zlib
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from io import BytesIO
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union
from zipfile import BadZipFile, ZipFile

from .errors import MalformedInput, StorageError
from .markup import has_body_content
from .models import VIEWPORTS, IngestResult, Page, Project, Variant, asset_key
from .projects import Workspace
from .store import check_relative_path
from .utils import (
    ARCHIVE_EXTENSIONS,
    DEFAULT_CONTENT_TYPE,
    MIME_TYPES,
    PAGE_EXTENSIONS,
    TEXT_EXTENSIONS,
    basename,
    content_type_for,
    extension_for_type,
    get_extension,
    slugify,
)

SKIP_SEGMENTS = ("__MACOSX", "node_modules")
SKIP_NAMES = (".DS_Store",)

PAGE = "page"
ASSET = "asset"


@dataclass
class PreparedEntry:
    path: str
    data: Union[str, bytes]
    content_type: str
    is_page: bool = False


def should_skip_entry(path: str) -> bool:
    name = basename(path)
    segments = path.split("/")[:-1]
    return (
        not name
        or name.startswith("._")
        or name in SKIP_NAMES
        or name.lower().endswith(".map")
        or any(seg in SKIP_SEGMENTS for seg in segments)
    )


def classify_entry(path: str) -> Optional[str]:
    if should_skip_entry(path):
        return None
    ext = get_extension(path)
    if ext in PAGE_EXTENSIONS:
        return PAGE
    if ext in ARCHIVE_EXTENSIONS:
        return ASSET
    return None


def open_archive(archive_bytes: bytes) -> ZipFile:
    try:
        return ZipFile(BytesIO(archive_bytes))
    except (BadZipFile, ValueError) as e:
        raise MalformedInput(f"corrupt archive: {e}") from e


def iter_archive(zf: ZipFile) -> Iterator[Tuple[str, str]]:
    for info in zf.infolist():
        if info.is_dir():
            continue
        kind = classify_entry(info.filename)
        if kind is None:
            logging.debug("skip archive entry %s", info.filename)
            continue
        yield info.filename, kind


def prepare_entry(path: str, kind: str, raw: bytes) -> Optional[PreparedEntry]:
    """Decode one entry; ``None`` means a page without body content."""
    check_relative_path(path)
    ext = get_extension(path)
    if kind == PAGE:
        try:
            text = raw.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise MalformedInput(f"undecodable page {path}: {e}") from e
        if not has_body_content(text):
            return None
        return PreparedEntry(path, text, "text/html", is_page=True)
    content_type = MIME_TYPES.get(ext, DEFAULT_CONTENT_TYPE)
    if ext in TEXT_EXTENSIONS:
        try:
            return PreparedEntry(path, raw.decode("utf-8-sig"), content_type)
        except UnicodeDecodeError as e:
            raise MalformedInput(f"undecodable text asset {path}: {e}") from e
    return PreparedEntry(path, raw, content_type)


def read_entries(zf: ZipFile, warnings: List[str]) -> Iterator[PreparedEntry]:
    for path, kind in iter_archive(zf):
        try:
            entry = prepare_entry(path, kind, zf.read(path))
        except (MalformedInput, BadZipFile, zlib.error) as e:
            logging.warning("skip archive entry %s: %s", path, e)
            warnings.append(f"skipped {path}: {e}")
            continue
        if entry is None:
            logging.info("skipped page with no body content: %s", path)
            warnings.append(f"skipped {path}: page has no body content")
            continue
        yield entry


def _page_for(project_id: str, entry: PreparedEntry) -> Page:
    return Page(name=basename(entry.path), path=entry.path, asset_key=asset_key(project_id, entry.path))


# -------------------- Archive ingester --------------------


class ArchiveIngester:
    def __init__(self, workspace: Workspace):
        self.ws = workspace

    def ingest(self, project_id: str, archive_bytes: bytes) -> IngestResult:
        result = IngestResult()
        with open_archive(archive_bytes) as zf:
            for entry in read_entries(zf, result.warnings):
                key = asset_key(project_id, entry.path)
                self.ws.content.write(key, entry.data, entry.content_type)
                result.asset_keys.append(key)
                if entry.is_page:
                    result.pages.append(_page_for(project_id, entry))
                logging.debug("stored %s (%s)", key, entry.content_type)
        logging.info(
            "ingested archive into %s: %d pages, %d assets",
            project_id,
            len(result.pages),
            len(result.asset_keys),
        )
        return result

    def upload_project(
        self,
        archive_bytes: bytes,
        name: str = "",
        client_name: str = "",
        description: str = "",
    ) -> Tuple[Project, List[str]]:
        if not archive_bytes:
            raise MalformedInput("no file uploaded")
        project = self.ws.new_project(name, client_name, description)
        result = self.ingest(project.id, archive_bytes)
        project.pages = result.pages
        project.asset_keys = result.asset_keys
        return self.ws.publish(project), result.warnings


# -------------------- Chunked upload --------------------


class BatchUploader:
    """Uploads archive entries in small concurrent batches.

    Each item is written independently; a failed write is reported and its
    batch siblings still complete. Project metadata is merged once, after
    every batch has settled.
    """

    def __init__(self, workspace: Workspace, batch_size: Optional[int] = None, workers: Optional[int] = None):
        self.ws = workspace
        self.batch_size = max(1, batch_size or workspace.settings.upload_batch_size)
        self.workers = max(1, workers or workspace.settings.upload_workers)

    def _upload_one(self, project_id: str, entry: PreparedEntry) -> str:
        key = asset_key(project_id, entry.path)
        self.ws.content.write(key, entry.data, entry.content_type)
        return key

    def upload_entries(
        self, project_id: str, entries: Sequence[PreparedEntry], warnings: List[str]
    ) -> Tuple[List[str], List[Page]]:
        stored: Dict[int, str] = {}
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            for start in range(0, len(entries), self.batch_size):
                batch = list(enumerate(entries[start : start + self.batch_size], start))
                futures = {pool.submit(self._upload_one, project_id, e): i for i, e in batch}
                done, _ = wait(futures)
                for fut in done:
                    i = futures[fut]
                    try:
                        stored[i] = fut.result()
                    except (StorageError, MalformedInput) as e:
                        logging.warning("upload failed for %s: %s", entries[i].path, e)
                        warnings.append(f"failed {entries[i].path}: {e}")
        keys = [stored[i] for i in sorted(stored)]
        pages = [_page_for(project_id, entries[i]) for i in sorted(stored) if entries[i].is_page]
        return keys, pages

    def upload_archive(
        self,
        archive_bytes: bytes,
        name: str = "",
        client_name: str = "",
        description: str = "",
    ) -> Tuple[Project, List[str]]:
        if not archive_bytes:
            raise MalformedInput("no file uploaded")
        warnings: List[str] = []
        with open_archive(archive_bytes) as zf:
            entries = list(read_entries(zf, warnings))
        project = self.ws.init_project(name, client_name, description, expected_files=len(entries))
        keys, pages = self.upload_entries(project.id, entries, warnings)
        self.ws.merge_upload(project.id, pages, keys)
        return self.ws.finalize_project(project.id), warnings


# -------------------- Image mockups --------------------


@dataclass
class UploadedFile:
    filename: str
    data: bytes
    content_type: str = ""


def _image_extension(filename: str, content_type: str) -> str:
    if filename and "." in filename:
        return filename.rsplit(".", 1)[-1].lower()
    return extension_for_type(content_type) or "png"


def parse_assignments(assignments: Union[str, bytes, Sequence[dict]]) -> List[dict]:
    if isinstance(assignments, (str, bytes)):
        try:
            assignments = json.loads(assignments)
        except ValueError as e:
            raise MalformedInput("invalid assignments payload") from e
    if not isinstance(assignments, list) or not assignments:
        raise MalformedInput("no images provided")
    if not all(isinstance(a, dict) for a in assignments):
        raise MalformedInput("invalid assignments payload")
    return assignments


def ingest_images(
    ws: Workspace,
    assignments: Union[str, bytes, Sequence[dict]],
    files: Mapping[str, UploadedFile],
    name: str = "",
    client_name: str = "",
    description: str = "",
) -> Project:
    items = parse_assignments(assignments)
    project = ws.new_project(name, client_name, description, project_type="images")

    planned = []
    for a in items:
        page_name = (a.get("pageName") or "Untitled Page").strip()
        viewport = (a.get("viewport") or "desktop").lower()
        if viewport not in VIEWPORTS:
            raise MalformedInput(f"invalid viewport: {viewport}")
        upload = files.get(a.get("fileField") or "")
        if upload is None:
            raise MalformedInput(f"missing image data for {page_name}")
        planned.append((page_name, slugify(page_name), viewport, upload, a.get("originalName")))

    pages: Dict[str, Page] = {}
    for page_name, slug, viewport, upload, original_name in planned:
        filename = upload.filename or original_name or f"{slug}-{viewport}"
        ext = _image_extension(filename, upload.content_type)
        path = f"images/{slug}/{viewport}.{ext}"
        key = asset_key(project.id, path)
        content_type = upload.content_type or content_type_for(path)
        ws.content.write(key, upload.data, content_type)
        project.add_asset_key(key)
        page = pages.setdefault(slug, Page(name=page_name, path=f"images/{slug}"))
        page.variants[viewport] = Variant(path=path, filename=filename)

    project.pages = list(pages.values())
    logging.info("ingested %d images into %d pages for %s", len(planned), len(pages), project.id)
    return ws.publish(project)
