import json
import logging
import os
from pathlib import Path, PurePosixPath
from threading import Lock
from typing import Dict, List, Optional, Tuple, Union

from .errors import MalformedInput, StorageError
from .models import Project, ProjectSummary
from .utils import DEFAULT_CONTENT_TYPE

LIST_KEY = "_list"


def ensure_parent_dir(p: Path) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)


def atomic_write_bytes(path: Path, data: bytes) -> None:
    ensure_parent_dir(path)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_bytes(data)
    os.replace(tmp, path)


def atomic_write_json(path: Path, data: Union[dict, list]) -> None:
    atomic_write_bytes(path, json.dumps(data, indent=2).encode("utf-8"))


def _to_bytes(data: Union[str, bytes]) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)


def check_relative_path(path: str) -> str:
    if not path or path.startswith("/") or ".." in PurePosixPath(path).parts:
        raise MalformedInput(f"invalid relative path: {path!r}")
    return path


def check_key(key: str) -> str:
    project_id, _, rel = key.partition("/")
    if not project_id or not rel:
        raise MalformedInput(f"invalid asset key: {key!r}")
    check_relative_path(rel)
    return key


# -------------------- Content store --------------------


class ContentStore:
    def write(self, key: str, data: Union[str, bytes], content_type: str) -> None:
        raise NotImplementedError

    def read_with_metadata(self, key: str) -> Optional[Tuple[bytes, str]]:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def list(self, prefix: str = "") -> List[str]:
        raise NotImplementedError

    def read(self, key: str) -> Optional[bytes]:
        found = self.read_with_metadata(key)
        return None if found is None else found[0]

    def read_text(self, key: str) -> Optional[str]:
        data = self.read(key)
        return None if data is None else data.decode("utf-8", errors="replace")

    def exists(self, key: str) -> bool:
        return self.read_with_metadata(key) is not None


class MemContentStore(ContentStore):
    def __init__(self) -> None:
        self._m: Dict[str, Tuple[bytes, str]] = {}
        self._lock = Lock()

    def write(self, key: str, data: Union[str, bytes], content_type: str) -> None:
        check_key(key)
        with self._lock:
            self._m[key] = (_to_bytes(data), content_type or DEFAULT_CONTENT_TYPE)

    def read_with_metadata(self, key: str) -> Optional[Tuple[bytes, str]]:
        with self._lock:
            return self._m.get(key)

    def delete(self, key: str) -> None:
        with self._lock:
            self._m.pop(key, None)

    def list(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in self._m if k.startswith(prefix))


class FileContentStore(ContentStore):
    """Blobs under ``root/blobs/<key>``, content types under ``root/meta``."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.blobs = self.root / "blobs"
        self.meta = self.root / "meta"

    def _paths(self, key: str) -> Tuple[Path, Path]:
        check_key(key)
        return self.blobs / key, self.meta / f"{key}.json"

    def write(self, key: str, data: Union[str, bytes], content_type: str) -> None:
        blob, meta = self._paths(key)
        try:
            atomic_write_bytes(blob, _to_bytes(data))
            atomic_write_json(meta, {"contentType": content_type or DEFAULT_CONTENT_TYPE})
        except OSError as e:
            raise StorageError(f"failed to write {key}: {e}") from e

    def read_with_metadata(self, key: str) -> Optional[Tuple[bytes, str]]:
        blob, meta = self._paths(key)
        try:
            if not blob.is_file():
                return None
            data = blob.read_bytes()
            content_type = DEFAULT_CONTENT_TYPE
            if meta.is_file():
                content_type = json.loads(meta.read_text(encoding="utf-8")).get(
                    "contentType", DEFAULT_CONTENT_TYPE
                )
            return data, content_type
        except (OSError, ValueError) as e:
            raise StorageError(f"failed to read {key}: {e}") from e

    def delete(self, key: str) -> None:
        blob, meta = self._paths(key)
        try:
            blob.unlink(missing_ok=True)
            meta.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"failed to delete {key}: {e}") from e

    def list(self, prefix: str = "") -> List[str]:
        if not self.blobs.is_dir():
            return []
        keys = []
        for p in self.blobs.rglob("*"):
            if p.is_file() and not p.name.endswith(".tmp"):
                k = p.relative_to(self.blobs).as_posix()
                if k.startswith(prefix):
                    keys.append(k)
        return sorted(keys)


# -------------------- Project metadata store --------------------


class ProjectStore:
    def __init__(self) -> None:
        self._list_lock = Lock()

    def get(self, project_id: str) -> Optional[Project]:
        raise NotImplementedError

    def set(self, project: Project) -> None:
        raise NotImplementedError

    def delete(self, project_id: str) -> None:
        raise NotImplementedError

    def ids(self) -> List[str]:
        raise NotImplementedError

    def _load_listing(self) -> List[dict]:
        raise NotImplementedError

    def _save_listing(self, entries: List[dict]) -> None:
        raise NotImplementedError

    def listing(self) -> List[ProjectSummary]:
        return [ProjectSummary.from_dict(e) for e in self._load_listing() if isinstance(e, dict)]

    def raw_listing(self) -> List[dict]:
        return list(self._load_listing())

    def replace_listing(self, entries: List[dict]) -> None:
        with self._list_lock:
            self._save_listing(entries)

    def add_to_listing(self, summary: ProjectSummary) -> None:
        with self._list_lock:
            entries = [e for e in self._load_listing() if not (isinstance(e, dict) and e.get("id") == summary.id)]
            entries.append(summary.to_dict())
            self._save_listing(entries)

    def remove_from_listing(self, project_id: str) -> None:
        with self._list_lock:
            entries = [e for e in self._load_listing() if not (isinstance(e, dict) and e.get("id") == project_id)]
            self._save_listing(entries)


class MemProjectStore(ProjectStore):
    def __init__(self) -> None:
        super().__init__()
        self._m: Dict[str, dict] = {}
        self._list: List[dict] = []

    def get(self, project_id: str) -> Optional[Project]:
        data = self._m.get(project_id)
        return None if data is None else Project.from_dict(data)

    def set(self, project: Project) -> None:
        self._m[project.id] = project.to_dict()

    def delete(self, project_id: str) -> None:
        self._m.pop(project_id, None)

    def ids(self) -> List[str]:
        return sorted(self._m)

    def _load_listing(self) -> List[dict]:
        return list(self._list)

    def _save_listing(self, entries: List[dict]) -> None:
        self._list = list(entries)


class JsonProjectStore(ProjectStore):
    def __init__(self, root: Union[str, Path]):
        super().__init__()
        self.root = Path(root)

    def _path(self, project_id: str) -> Path:
        if not project_id or "/" in project_id or project_id.startswith(".") or project_id == LIST_KEY:
            raise MalformedInput(f"invalid project id: {project_id!r}")
        return self.root / f"{project_id}.json"

    def get(self, project_id: str) -> Optional[Project]:
        p = self._path(project_id)
        if not p.is_file():
            return None
        try:
            return Project.from_dict(json.loads(p.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError) as e:
            raise StorageError(f"failed to load project {project_id}: {e}") from e

    def set(self, project: Project) -> None:
        try:
            atomic_write_json(self._path(project.id), project.to_dict())
        except OSError as e:
            raise StorageError(f"failed to save project {project.id}: {e}") from e

    def delete(self, project_id: str) -> None:
        try:
            self._path(project_id).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"failed to delete project {project_id}: {e}") from e

    def ids(self) -> List[str]:
        if not self.root.is_dir():
            return []
        return sorted(p.stem for p in self.root.glob("*.json") if p.stem != LIST_KEY)

    def _load_listing(self) -> List[dict]:
        p = self.root / f"{LIST_KEY}.json"
        if not p.is_file():
            return []
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logging.warning("failed to load project listing %s: %s", p, e)
            return []
        return data if isinstance(data, list) else []

    def _save_listing(self, entries: List[dict]) -> None:
        try:
            atomic_write_json(self.root / f"{LIST_KEY}.json", entries)
        except OSError as e:
            raise StorageError(f"failed to save project listing: {e}") from e
