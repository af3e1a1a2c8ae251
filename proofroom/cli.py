import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .errors import ProofroomError
from .ingest import ArchiveIngester, BatchUploader, UploadedFile, ingest_images
from .mirror import SiteMirror
from .projects import Workspace
from .serve import ServeTimeResolver
from .settings import Settings, load_config_file
from .utils import content_type_for

# -------------------- CLI --------------------


def _add_project_meta(p: argparse.ArgumentParser) -> None:
    p.add_argument("--name", default="", help="project display name")
    p.add_argument("--client", default="", help="client name")
    p.add_argument("--description", default="", help="project description")


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Capture web content into review projects and serve it back.",
    )
    p.add_argument("--config", type=str, default=None, help="path to config.toml|.yaml")
    p.add_argument("--data-dir", type=str, default=None, help="storage root directory")
    p.add_argument("--verbose", action="store_true", help="debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    m = sub.add_parser("mirror", help="mirror one live page and its assets")
    m.add_argument("url", help="http(s) URL or bare host")
    _add_project_meta(m)
    m.add_argument("--max-assets", type=int, default=None, help="max captured assets")
    m.add_argument("--max-bytes", type=int, default=None, help="max bytes per asset")
    m.add_argument("--max-seconds", type=float, default=None, help="overall time budget")
    m.add_argument("--page-timeout", type=float, default=None, help="seed fetch timeout")
    m.add_argument("--asset-timeout", type=float, default=None, help="per-asset fetch timeout")

    i = sub.add_parser("ingest", help="ingest a zip archive of a site")
    i.add_argument("archive", type=Path, help="zip file")
    _add_project_meta(i)
    i.add_argument("--batched", action="store_true", help="upload entries in concurrent batches")

    im = sub.add_parser("images", help="create a project from image mockups")
    im.add_argument("assignments", type=Path, help="JSON list of {pageName, viewport, fileField}")
    im.add_argument("files", nargs="+", type=Path, help="image files; fileField is the file name")
    _add_project_meta(im)

    r = sub.add_parser("render", help="print a stored page rewritten for serving")
    r.add_argument("project_id")
    r.add_argument("page_path")
    r.add_argument("--base-url", default="", help="origin prepended to API URLs")

    sub.add_parser("list", help="list finalized projects")

    s = sub.add_parser("show", help="print project metadata")
    s.add_argument("project_id")

    d = sub.add_parser("delete", help="delete a project and its assets")
    d.add_argument("project_id")

    c = sub.add_parser("cleanup", help="drop invalid listing entries")
    c.add_argument("--orphans", action="store_true", help="also delete assets of unknown projects")

    sv = sub.add_parser("serve", help="run the HTTP API")
    sv.add_argument("--bind", default="127.0.0.1", help="bind address")
    sv.add_argument("--port", type=int, default=8787, help="port")
    return p


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    return build_arg_parser().parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    cfg = load_config_file(args.config) if args.config else {}
    settings = Settings.from_mapping(cfg)
    if args.data_dir:
        settings.data_dir = args.data_dir
    overrides = {
        "max_asset_count": getattr(args, "max_assets", None),
        "max_asset_bytes": getattr(args, "max_bytes", None),
        "max_total_seconds": getattr(args, "max_seconds", None),
        "page_timeout": getattr(args, "page_timeout", None),
        "asset_timeout": getattr(args, "asset_timeout", None),
    }
    for k, v in overrides.items():
        if v is not None:
            setattr(settings, k, v)
    return settings.clamped()


def _report(project, warnings: List[str]) -> None:
    for w in warnings:
        logging.warning("%s", w)
    print(json.dumps({"project": project.to_dict(), "shareUrl": f"/review/{project.id}"}, indent=2))


def run(args: argparse.Namespace, ws: Workspace) -> int:
    cmd = args.command
    if cmd == "mirror":
        project, warnings = SiteMirror(ws).mirror_project(args.url, args.name, args.client, args.description)
        _report(project, warnings)
    elif cmd == "ingest":
        data = args.archive.read_bytes()
        name = args.name or args.archive.stem
        if args.batched:
            project, warnings = BatchUploader(ws).upload_archive(data, name, args.client, args.description)
        else:
            project, warnings = ArchiveIngester(ws).upload_project(data, name, args.client, args.description)
        _report(project, warnings)
    elif cmd == "images":
        files = {
            f.name: UploadedFile(f.name, f.read_bytes(), content_type_for(f.name))
            for f in args.files
        }
        project = ingest_images(
            ws, args.assignments.read_text(encoding="utf-8"), files, args.name, args.client, args.description
        )
        _report(project, [])
    elif cmd == "render":
        sys.stdout.write(ServeTimeResolver(ws, args.base_url).resolve_for_serving(args.project_id, args.page_path))
    elif cmd == "list":
        for s in ws.list_projects():
            print(f"{s.id}\t{s.type}\t{s.page_count} pages\t{s.name}")
    elif cmd == "show":
        print(json.dumps(ws.get_project(args.project_id), indent=2))
    elif cmd == "delete":
        ws.delete_project(args.project_id)
        print(f"deleted {args.project_id}")
    elif cmd == "cleanup":
        before, after = ws.cleanup_listing()
        print(f"listing: {before} -> {after} entries")
        if args.orphans:
            print(f"deleted {ws.delete_orphaned_assets()} orphaned assets")
    elif cmd == "serve":
        from .server import serve

        serve(ws, args.bind, args.port)
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    try:
        settings = build_settings(args)
        sys.exit(run(args, Workspace.open(settings)))
    except ProofroomError as e:
        logging.error("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
