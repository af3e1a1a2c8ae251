import json
import re
from concurrent.futures import ThreadPoolExecutor

import pytest

from proofroom.errors import MalformedInput, ProjectNotFound
from proofroom.models import STATUS_READY, STATUS_UPLOADING, new_project_id
from proofroom.projects import Workspace
from proofroom.settings import Settings
from proofroom.store import FileContentStore, JsonProjectStore

PAGE = "<html><body><p>Content</p></body></html>"


def test_project_id_format():
    assert re.fullmatch(r"proj_\d{13}_[a-z0-9]{9}", new_project_id())


# ---------------------------------------------------------------------------
# upload lifecycle
# ---------------------------------------------------------------------------
class TestLifecycle:
    def test_init_is_not_listed(self, ws):
        project = ws.init_project("Draft", "Acme", "", expected_files=3)
        assert project.status == STATUS_UPLOADING
        assert ws.load(project.id).expected_files == 3
        assert ws.list_projects() == []

    def test_add_file_promotes_pages_with_body(self, ws):
        pid = ws.init_project("Draft").id
        key, page = ws.add_file(pid, "index.html", PAGE, "text/html", is_html=True)
        assert key == f"{pid}/index.html"
        assert page is not None and page.name == "index.html"
        _, empty = ws.add_file(pid, "shell.html", "<html><body> </body></html>", "text/html", is_html=True)
        assert empty is None
        ws.add_file(pid, "a.css", "p{}", "text/css")

        project = ws.load(pid)
        assert [p.path for p in project.pages] == ["index.html"]
        assert project.uploaded_files == 3
        assert len(project.asset_keys) == 3

    def test_add_file_unknown_project(self, ws):
        with pytest.raises(ProjectNotFound):
            ws.add_file("proj_nope", "a.css", "p{}", "text/css")

    def test_concurrent_add_file_keeps_every_upload(self, ws):
        pid = ws.init_project("Draft", expected_files=20).id
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda i: ws.add_file(pid, f"css/{i}.css", "p{}", "text/css"), range(20)))
        project = ws.load(pid)
        assert project.uploaded_files == 20
        assert len(project.asset_keys) == 20

    def test_finalize(self, ws):
        pid = ws.init_project("Draft", "Acme").id
        ws.add_file(pid, "index.html", PAGE, "text/html", is_html=True)
        project = ws.finalize_project(pid)
        assert project.status == STATUS_READY
        assert project.expected_files is None and project.uploaded_files is None
        (summary,) = ws.list_projects()
        assert summary.id == pid
        assert summary.page_count == 1
        assert summary.client_name == "Acme"

    def test_finalize_twice_lists_once(self, ws):
        pid = ws.init_project("Draft").id
        ws.finalize_project(pid)
        ws.finalize_project(pid)
        assert [s.id for s in ws.list_projects()] == [pid]

    def test_default_name(self, ws):
        assert ws.new_project().name == "Untitled Project"


# ---------------------------------------------------------------------------
# read side and maintenance
# ---------------------------------------------------------------------------
class TestReadAndMaintenance:
    def published(self, ws):
        pid = ws.init_project("Site").id
        ws.add_file(pid, "docs/index.html", PAGE, "text/html", is_html=True)
        ws.add_file(pid, "docs/a.css", "p{}", "text/css")
        ws.finalize_project(pid)
        return pid

    def test_get_project_with_content(self, ws):
        pid = self.published(ws)
        data = ws.get_project(pid, with_content=True)
        assert data["status"] == STATUS_READY
        (page,) = data["pages"]
        assert page["relativePath"] == "docs/index.html"
        assert page["content"] == PAGE
        assert "content" not in ws.get_project(pid)["pages"][0]

    def test_delete_project(self, ws):
        pid = self.published(ws)
        ws.delete_project(pid)
        assert ws.content.list(f"{pid}/") == []
        assert ws.projects.get(pid) is None
        assert ws.list_projects() == []
        with pytest.raises(ProjectNotFound):
            ws.delete_project(pid)

    def test_cleanup_listing(self, ws):
        pid = self.published(ws)
        ws.projects.replace_listing(ws.projects.raw_listing() + [{"id": "junk"}, {"name": "no id"}, "garbage"])
        assert ws.cleanup_listing() == (4, 1)
        assert [s.id for s in ws.list_projects()] == [pid]

    def test_orphaned_assets(self, ws):
        pid = self.published(ws)
        ws.content.write("proj_ghost/a.css", "p{}", "text/css")
        ws.content.write("proj_ghost/b.png", b"\x00", "image/png")
        assert ws.find_orphaned_assets() == {"proj_ghost": ["proj_ghost/a.css", "proj_ghost/b.png"]}
        assert ws.delete_orphaned_assets() == 2
        assert ws.content.list() == sorted(ws.load(pid).asset_keys)


# ---------------------------------------------------------------------------
# filesystem backends
# ---------------------------------------------------------------------------
class TestFileBackends:
    def test_content_round_trip(self, tmp_path):
        store = FileContentStore(tmp_path)
        store.write("proj_1/css/site.css", "p{}", "text/css")
        assert store.read_with_metadata("proj_1/css/site.css") == (b"p{}", "text/css")
        assert store.read("proj_1/missing.css") is None
        assert store.list("proj_1/") == ["proj_1/css/site.css"]
        store.delete("proj_1/css/site.css")
        assert not store.exists("proj_1/css/site.css")

    @pytest.mark.parametrize("key", ["proj_1/../escape.css", "proj_1//abs.css", "noslash", "proj_1/"])
    def test_invalid_keys(self, tmp_path, key):
        with pytest.raises(MalformedInput):
            FileContentStore(tmp_path).write(key, "x", "text/plain")

    def test_listing_persists(self, tmp_path):
        ws = Workspace.open(Settings(data_dir=str(tmp_path)))
        pid = ws.init_project("Saved").id
        ws.add_file(pid, "index.html", PAGE, "text/html", is_html=True)
        ws.finalize_project(pid)

        reopened = Workspace.open(Settings(data_dir=str(tmp_path)))
        assert [s.id for s in reopened.list_projects()] == [pid]
        assert reopened.content.read_text(f"{pid}/index.html") == PAGE
        listing = json.loads((tmp_path / "projects" / "_list.json").read_text())
        assert listing[0]["pageCount"] == 1

    def test_project_ids_exclude_listing(self, tmp_path):
        store = JsonProjectStore(tmp_path)
        ws = Workspace(FileContentStore(tmp_path / "assets"), store)
        pid = ws.init_project().id
        ws.finalize_project(pid)
        assert store.ids() == [pid]

    def test_bad_project_id(self, tmp_path):
        with pytest.raises(MalformedInput):
            JsonProjectStore(tmp_path).get("../etc")
