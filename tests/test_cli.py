import json

from conftest import PNG_BYTES, make_zip
from proofroom.cli import build_settings, parse_args, run

PAGE = "<html><body><h1>Hi</h1></body></html>"


class TestArgs:
    def test_budget_overrides(self, tmp_path):
        args = parse_args(["--data-dir", str(tmp_path), "mirror", "example.com", "--max-assets", "5"])
        s = build_settings(args)
        assert s.max_asset_count == 5
        assert s.data_dir == str(tmp_path)
        assert s.max_total_seconds == 8.0

    def test_flags_override_config(self, tmp_path):
        cfg = tmp_path / "c.toml"
        cfg.write_text("[budgets]\nmax_asset_count = 9\nmax_total_seconds = 3.0\n")
        args = parse_args(["--config", str(cfg), "mirror", "example.com", "--max-assets", "2"])
        s = build_settings(args)
        assert s.max_asset_count == 2
        assert s.max_total_seconds == 3.0


class TestCommands:
    def test_ingest_list_show_delete(self, ws, tmp_path, capsys):
        archive = tmp_path / "site.zip"
        archive.write_bytes(make_zip({"index.html": PAGE, "img/a.png": PNG_BYTES}))

        assert run(parse_args(["ingest", str(archive), "--client", "Acme"]), ws) == 0
        created = json.loads(capsys.readouterr().out)
        pid = created["project"]["id"]
        assert created["project"]["name"] == "site"
        assert created["shareUrl"] == f"/review/{pid}"

        run(parse_args(["list"]), ws)
        assert pid in capsys.readouterr().out

        run(parse_args(["show", pid]), ws)
        assert json.loads(capsys.readouterr().out)["pages"][0]["path"] == "index.html"

        run(parse_args(["render", pid, "index.html"]), ws)
        assert capsys.readouterr().out == PAGE

        run(parse_args(["delete", pid]), ws)
        assert ws.list_projects() == []

    def test_batched_ingest(self, ws, tmp_path, capsys):
        archive = tmp_path / "site.zip"
        archive.write_bytes(make_zip({"index.html": PAGE}))
        run(parse_args(["ingest", str(archive), "--batched", "--name", "Batch"]), ws)
        assert json.loads(capsys.readouterr().out)["project"]["name"] == "Batch"

    def test_images(self, ws, tmp_path, capsys):
        shot = tmp_path / "home.png"
        shot.write_bytes(PNG_BYTES)
        assignments = tmp_path / "a.json"
        assignments.write_text(json.dumps([{"pageName": "Home", "viewport": "desktop", "fileField": "home.png"}]))
        run(parse_args(["images", str(assignments), str(shot)]), ws)
        project = json.loads(capsys.readouterr().out)["project"]
        assert project["type"] == "images"
        assert project["pages"][0]["variants"]["desktop"]["path"] == "images/home/desktop.png"

    def test_cleanup_orphans(self, ws, capsys):
        ws.content.write("proj_ghost/a.css", "p{}", "text/css")
        run(parse_args(["cleanup", "--orphans"]), ws)
        out = capsys.readouterr().out
        assert "deleted 1 orphaned assets" in out
        assert ws.content.list() == []
