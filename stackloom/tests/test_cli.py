"""Tests for the command-line entry point."""

import json
import sys

import pytest
from stackloom.__main__ import collect_files, main


SPEC_YAML = """
source:
  language: JavaScript
  framework: React
target:
  language: TypeScript
  framework: Next.js
  routing: app-router
mappings:
  imports:
    react-router-dom: next/navigation
"""


@pytest.fixture
def repo(tmp_path):
    root = tmp_path / "repo"
    (root / "src" / "components").mkdir(parents=True)
    (root / "node_modules" / "react").mkdir(parents=True)
    (root / "src" / "App.jsx").write_text("export default function App() { return <div />; }\n")
    (root / "src" / "index.js").write_text("import App from './App';\n")
    (root / "src" / "components" / "Nav.jsx").write_text(
        'import { useNavigate } from "react-router-dom";\n'
        "export const Nav = () => { const n = useNavigate(); return <nav />; };\n"
    )
    (root / "node_modules" / "react" / "index.js").write_text("module.exports = {};\n")
    spec = tmp_path / "spec.yaml"
    spec.write_text(SPEC_YAML)
    return root, spec


def _run(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["stackloom", *map(str, args)])
    monkeypatch.delenv("STACKLOOM_SEMANTIC_ENABLED", raising=False)
    return main()


class TestCollectFiles:
    def test_skips_vendored_directories(self, repo):
        root, _ = repo
        paths = [f.path for f in collect_files(root)]
        assert paths == ["src/App.jsx", "src/index.js", "src/components/Nav.jsx"]


class TestMain:
    def test_output_directory(self, repo, tmp_path, monkeypatch):
        root, spec = repo
        out = tmp_path / "out"
        report = tmp_path / "report.json"
        code = _run(
            monkeypatch, root, "--spec", spec, "--output", out, "--report", report,
            "--config", tmp_path / "missing.yaml",
        )
        assert code == 0
        assert (out / "app" / "page.tsx").exists()
        assert (out / "app" / "layout.tsx").exists()
        assert "useRouter" in (out / "components" / "Nav.tsx").read_text()
        assert not (out / "src" / "index.js").exists()
        data = json.loads(report.read_text())
        assert data["statistics"]["total_files"] == len(data["results"])

    def test_in_place(self, repo, tmp_path, monkeypatch):
        root, spec = repo
        code = _run(monkeypatch, root, "--spec", spec, "--in-place", "--config", tmp_path / "missing.yaml")
        assert code == 0
        assert (root / "app" / "page.tsx").exists()
        assert not (root / "src" / "App.jsx").exists()
        assert not (root / "src" / "index.js").exists()

    def test_invalid_spec(self, repo, tmp_path, monkeypatch):
        root, _ = repo
        bad = tmp_path / "bad.yaml"
        bad.write_text("rules:\n  mustPreserve: nope\n")
        assert _run(monkeypatch, root, "--spec", bad, "--config", tmp_path / "missing.yaml") == 2

    def test_missing_source_directory(self, repo, tmp_path, monkeypatch):
        _, spec = repo
        assert _run(monkeypatch, tmp_path / "nowhere", "--spec", spec, "--config", tmp_path / "missing.yaml") == 2
