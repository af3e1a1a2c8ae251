"""Project lifecycle on top of the content and metadata stores."""

import logging
import threading
from typing import Dict, List, Optional, Tuple, Union

from .errors import ProjectNotFound, StorageError
from .markup import has_body_content
from .models import (
    STATUS_READY,
    STATUS_UPLOADING,
    Page,
    Project,
    ProjectSummary,
    asset_key,
    new_project_id,
    utc_now,
)
from .settings import Settings
from .store import (
    ContentStore,
    FileContentStore,
    JsonProjectStore,
    MemContentStore,
    MemProjectStore,
    ProjectStore,
)
from .utils import basename


class Workspace:
    def __init__(
        self,
        content: ContentStore,
        projects: ProjectStore,
        settings: Optional[Settings] = None,
    ):
        self.content = content
        self.projects = projects
        self.settings = settings or Settings()
        # guards read-modify-write of project records during chunked uploads
        self._lock = threading.Lock()

    @classmethod
    def open(cls, settings: Settings) -> "Workspace":
        return cls(
            FileContentStore(settings.content_dir),
            JsonProjectStore(settings.projects_dir),
            settings,
        )

    @classmethod
    def in_memory(cls, settings: Optional[Settings] = None) -> "Workspace":
        return cls(MemContentStore(), MemProjectStore(), settings)

    def load(self, project_id: str) -> Project:
        project = self.projects.get(project_id)
        if project is None:
            raise ProjectNotFound(project_id)
        return project

    # -------------------- Upload lifecycle --------------------

    def new_project(
        self,
        name: str = "",
        client_name: str = "",
        description: str = "",
        project_type: str = "archive",
    ) -> Project:
        return Project(
            id=new_project_id(),
            name=name or "Untitled Project",
            client_name=client_name or "",
            description=description or "",
            type=project_type,
        )

    def init_project(
        self,
        name: str = "",
        client_name: str = "",
        description: str = "",
        expected_files: int = 0,
    ) -> Project:
        project = self.new_project(name, client_name, description)
        project.status = STATUS_UPLOADING
        project.expected_files = expected_files or 0
        project.uploaded_files = 0
        self.projects.set(project)
        logging.info("initialised project %s (%d files expected)", project.id, project.expected_files)
        return project

    def add_file(
        self,
        project_id: str,
        path: str,
        data: Union[str, bytes],
        content_type: str,
        is_html: bool = False,
    ) -> Tuple[str, Optional[Page]]:
        key = asset_key(project_id, path)
        page = None
        if is_html:
            text = data if isinstance(data, str) else data.decode("utf-8", errors="replace")
            if has_body_content(text):
                page = Page(name=basename(path), path=path, asset_key=key)
            else:
                logging.info("skipped page with no body content: %s", path)
        with self._lock:
            project = self.load(project_id)
            self.content.write(key, data, content_type)
            project.uploaded_files = (project.uploaded_files or 0) + 1
            project.add_asset_key(key)
            if page is not None:
                project.pages.append(page)
                logging.info("added page %s", path)
            self.projects.set(project)
        return key, page

    def merge_upload(self, project_id: str, pages: List[Page], keys: List[str]) -> Project:
        with self._lock:
            project = self.load(project_id)
            for key in keys:
                project.add_asset_key(key)
            known = {p.path for p in project.pages}
            for page in pages:
                if page.path not in known:
                    project.pages.append(page)
                    known.add(page.path)
            project.uploaded_files = (project.uploaded_files or 0) + len(keys)
            project.last_modified = utc_now()
            self.projects.set(project)
        return project

    def finalize_project(self, project_id: str) -> Project:
        project = self.load(project_id)
        return self.publish(project)

    def publish(self, project: Project) -> Project:
        project.status = STATUS_READY
        project.last_modified = utc_now()
        project.expected_files = None
        project.uploaded_files = None
        self.projects.set(project)
        self.projects.add_to_listing(project.summary())
        logging.info("project %s ready (%d pages, %d assets)", project.id, len(project.pages), len(project.asset_keys))
        return project

    # -------------------- Read side --------------------

    def get_project(self, project_id: str, with_content: bool = False) -> dict:
        project = self.load(project_id)
        data = project.to_dict()
        if with_content:
            pages = []
            for page, raw in zip(project.pages, data["pages"]):
                entry = dict(raw)
                entry["relativePath"] = page.path
                content = ""
                if page.asset_key:
                    try:
                        content = self.content.read_text(page.asset_key) or ""
                    except StorageError as e:
                        logging.error("failed to read page %s: %s", page.asset_key, e)
                entry["content"] = content
                pages.append(entry)
            data["pages"] = pages
        return data

    def list_projects(self) -> List[ProjectSummary]:
        return self.projects.listing()

    # -------------------- Maintenance --------------------

    def delete_project(self, project_id: str) -> None:
        project = self.load(project_id)
        for key in project.asset_keys:
            try:
                self.content.delete(key)
            except StorageError as e:
                logging.warning("failed to delete asset %s: %s", key, e)
        self.projects.delete(project_id)
        self.projects.remove_from_listing(project_id)
        logging.info("deleted project %s", project_id)

    def cleanup_listing(self) -> Tuple[int, int]:
        entries = self.projects.raw_listing()
        cleaned = []
        for e in entries:
            pid = e.get("id") if isinstance(e, dict) else None
            if not pid or not str(pid).startswith("proj_"):
                logging.info("removing invalid project entry: %s", pid)
                continue
            cleaned.append(e)
        self.projects.replace_listing(cleaned)
        return len(entries), len(cleaned)

    def find_orphaned_assets(self) -> Dict[str, List[str]]:
        valid = set(self.projects.ids())
        orphans: Dict[str, List[str]] = {}
        for key in self.content.list():
            pid = key.split("/", 1)[0]
            if pid not in valid:
                orphans.setdefault(pid, []).append(key)
        return orphans

    def delete_orphaned_assets(self) -> int:
        deleted = 0
        for keys in self.find_orphaned_assets().values():
            for key in keys:
                try:
                    self.content.delete(key)
                    deleted += 1
                except StorageError as e:
                    logging.error("failed to delete %s: %s", key, e)
        return deleted
