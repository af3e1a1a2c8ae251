import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

from .errors import MalformedInput

# -------------------- Settings --------------------


@dataclass
class Settings:
    # Mirror budgets
    max_asset_count: int = 120
    max_asset_bytes: int = 15 * 1024 * 1024
    max_total_seconds: float = 8.0
    page_timeout: float = 6.0
    asset_timeout: float = 3.5

    # HTTP identity
    user_agent: str = "ProofroomBot/1.0"

    # Storage
    data_dir: str = "proofroom-data"

    # Serving
    api_prefix: str = "/api"
    api_version: str = "2.1.1"

    # Chunked upload
    upload_batch_size: int = 3
    upload_workers: int = 3

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Settings":
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for k, v in data.items():
            key = k.replace("-", "_")
            if key not in known:
                logging.warning("ignoring unknown setting: %s", k)
                continue
            kwargs[key] = v
        return cls(**kwargs).clamped()

    def clamped(self) -> "Settings":
        self.max_asset_count = max(1, int(self.max_asset_count))
        self.max_asset_bytes = max(1024, int(self.max_asset_bytes))
        self.max_total_seconds = max(0.1, float(self.max_total_seconds))
        self.page_timeout = max(0.1, float(self.page_timeout))
        self.asset_timeout = max(0.1, float(self.asset_timeout))
        self.upload_batch_size = max(1, int(self.upload_batch_size))
        self.upload_workers = max(1, int(self.upload_workers))
        return self

    @property
    def content_dir(self) -> Path:
        return Path(self.data_dir) / "assets"

    @property
    def projects_dir(self) -> Path:
        return Path(self.data_dir) / "projects"


# -------------------- Config loader --------------------

CONFIG_GROUPS = ("budgets", "storage", "http", "serve", "upload", "general")


def load_config_file(path: str) -> Dict[str, Union[str, int, float, bool, List[str]]]:
    p = Path(path)
    suf = p.suffix.lower()
    if suf in {".toml", ".tml"}:
        try:
            import tomllib  # py311+
        except ImportError:
            import tomli as tomllib  # backport
        with open(p, "rb") as f:
            data = tomllib.load(f) or {}
    elif suf in {".yaml", ".yml"}:
        import yaml

        with open(p, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    else:
        raise MalformedInput("unsupported config format, use .toml or .yaml")
    if not isinstance(data, dict):
        raise MalformedInput("top-level config must be a mapping")
    return flatten_config(data)


def flatten_config(cfg: Mapping[str, Any]) -> Dict[str, Any]:
    flat = {k: v for k, v in cfg.items() if not isinstance(v, dict)}
    for g in CONFIG_GROUPS:
        if isinstance(cfg.get(g), dict):
            flat.update(cfg[g])
    return flat
