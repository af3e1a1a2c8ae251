import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

VIEWPORTS = ("desktop", "tablet", "mobile")

STATUS_UPLOADING = "uploading"
STATUS_READY = "ready"


def utc_now() -> str:
    # RFC3339 UTC timestamp without microseconds
    return (
        datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


def new_project_id() -> str:
    alphabet = string.ascii_lowercase + string.digits
    suffix = "".join(random.choice(alphabet) for _ in range(9))
    return f"proj_{int(time.time() * 1000)}_{suffix}"


def asset_key(project_id: str, relative_path: str) -> str:
    return f"{project_id}/{relative_path}"


@dataclass
class Variant:
    path: str
    filename: str

    def to_dict(self) -> dict:
        return {"path": self.path, "fileName": self.filename}

    @classmethod
    def from_dict(cls, data: dict) -> "Variant":
        return cls(path=data.get("path", ""), filename=data.get("fileName", ""))


@dataclass
class Page:
    name: str
    path: str
    asset_key: Optional[str] = None
    variants: Dict[str, Variant] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {"name": self.name, "path": self.path}
        if self.asset_key:
            data["assetKey"] = self.asset_key
        if self.variants:
            data["variants"] = {k: v.to_dict() for k, v in self.variants.items()}
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Page":
        variants = {
            k: Variant.from_dict(v)
            for k, v in (data.get("variants") or {}).items()
            if isinstance(v, dict)
        }
        return cls(
            name=data.get("name", ""),
            path=data.get("path", ""),
            asset_key=data.get("assetKey"),
            variants=variants,
        )


@dataclass
class Project:
    id: str
    name: str = "Untitled Project"
    client_name: str = ""
    description: str = ""
    created_at: str = field(default_factory=utc_now)
    last_modified: str = field(default_factory=utc_now)
    status: str = STATUS_UPLOADING
    type: str = "archive"
    source_url: Optional[str] = None
    pages: List[Page] = field(default_factory=list)
    asset_keys: List[str] = field(default_factory=list)
    expected_files: Optional[int] = None
    uploaded_files: Optional[int] = None

    def add_asset_key(self, key: str) -> None:
        if key not in self.asset_keys:
            self.asset_keys.append(key)

    def relative_path(self, key: str) -> str:
        prefix = f"{self.id}/"
        return key[len(prefix) :] if key.startswith(prefix) else key

    def summary(self) -> "ProjectSummary":
        return ProjectSummary(
            id=self.id,
            name=self.name,
            client_name=self.client_name,
            created_at=self.created_at,
            page_count=len(self.pages),
            type=self.type,
        )

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "clientName": self.client_name,
            "description": self.description,
            "createdAt": self.created_at,
            "lastModified": self.last_modified,
            "status": self.status,
            "type": self.type,
            "pages": [p.to_dict() for p in self.pages],
            "assetKeys": list(self.asset_keys),
        }
        if self.source_url:
            data["sourceUrl"] = self.source_url
        if self.expected_files is not None:
            data["expectedFiles"] = self.expected_files
        if self.uploaded_files is not None:
            data["uploadedFiles"] = self.uploaded_files
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Project":
        return cls(
            id=data["id"],
            name=data.get("name", "Untitled Project"),
            client_name=data.get("clientName", ""),
            description=data.get("description", ""),
            created_at=data.get("createdAt") or utc_now(),
            last_modified=data.get("lastModified") or utc_now(),
            status=data.get("status", STATUS_READY),
            type=data.get("type", "archive"),
            source_url=data.get("sourceUrl"),
            pages=[Page.from_dict(p) for p in data.get("pages", []) if isinstance(p, dict)],
            asset_keys=list(data.get("assetKeys", [])),
            expected_files=data.get("expectedFiles"),
            uploaded_files=data.get("uploadedFiles"),
        )


@dataclass
class ProjectSummary:
    id: str
    name: str
    client_name: str
    created_at: str
    page_count: int
    type: str = "archive"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "clientName": self.client_name,
            "createdAt": self.created_at,
            "pageCount": self.page_count,
            "type": self.type,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectSummary":
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            client_name=data.get("clientName", ""),
            created_at=data.get("createdAt", ""),
            page_count=int(data.get("pageCount", 0)),
            type=data.get("type", "archive"),
        )


@dataclass
class IngestResult:
    pages: List[Page] = field(default_factory=list)
    asset_keys: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class MirrorResult:
    page: Page
    asset_keys: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    source_url: str = ""
