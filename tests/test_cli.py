"""Tests for the pagecraft command line."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from pathlib import Path

import httpx
import pytest

import pagecraft.__main__ as cli
from pagecraft.settings import Settings
from pagecraft.store import RestDocumentStore


@pytest.fixture
def cli_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Point the CLI at a throwaway SQLite database and skip logging setup."""
    monkeypatch.delenv("PAGECRAFT_SQLITE_PATH", raising=False)
    test_settings = Settings(data_dir=tmp_path, store_backend="sqlite")
    monkeypatch.setattr(cli, "settings", test_settings)
    monkeypatch.setattr(cli, "configure_logging", lambda level=None: None)
    return test_settings


def _new_document(capsys: pytest.CaptureFixture[str], title: str = "Notes") -> str:
    assert cli.main(["new", title]) == 0
    out = capsys.readouterr().out
    return out.split("Created document: ")[1].split()[0]


def _insert_legacy(db_path: Path, document_id: str, text: str) -> None:
    conn = sqlite3.connect(db_path)
    conn.execute(
        """INSERT INTO documents (id, title, content, created_at, updated_at)
           VALUES (?, 'Legacy', ?, '2024-01-01', '2024-01-01')""",
        (document_id, text),
    )
    conn.commit()
    conn.close()


class TestCli:

    def test_new_prints_id_and_title(
        self, cli_settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert cli.main(["new", "Meeting"]) == 0

        out = capsys.readouterr().out
        assert "Created document: " in out
        assert "Title: Meeting" in out
        assert cli_settings.sqlite_path.exists()

    def test_show_new_document(
        self, cli_settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        document_id = _new_document(capsys)

        assert cli.main(["show", document_id]) == 0

        out = capsys.readouterr().out
        assert "Notes" in out
        assert "paragraph: (empty)" in out
        assert "Total: 1 blocks (structured)" in out

    def test_show_unknown_document(
        self, cli_settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert cli.main(["show", "missing"]) == 1

        assert "Error: Document not found" in capsys.readouterr().out

    def test_import_then_export(
        self, cli_settings: Settings, capsys: pytest.CaptureFixture[str], tmp_path: Path
    ) -> None:
        document_id = _new_document(capsys)
        source = tmp_path / "notes.md"
        source.write_text("# Agenda\n\n1. budget\n2. hiring\n\n- [x] booked room\n", encoding="utf-8")

        assert cli.main(["import", document_id, str(source)]) == 0
        assert f"Imported 4 blocks into {document_id}" in capsys.readouterr().out

        assert cli.main(["export", document_id]) == 0
        assert capsys.readouterr().out == "# Agenda\n1. budget\n2. hiring\n- [x] booked room\n"

    def test_import_missing_file(
        self, cli_settings: Settings, capsys: pytest.CaptureFixture[str], tmp_path: Path
    ) -> None:
        document_id = _new_document(capsys)

        assert cli.main(["import", document_id, str(tmp_path / "nope.md")]) == 1
        assert "Error:" in capsys.readouterr().out

    def test_migrate_legacy_document(
        self, cli_settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        structured_id = _new_document(capsys)
        _insert_legacy(cli_settings.sqlite_path, "legacy", "# Old\n- one\n- two")

        assert cli.main(["migrate", "legacy", structured_id]) == 0

        out = capsys.readouterr().out
        assert "legacy: migrated 3 blocks" in out
        assert f"{structured_id}: already structured" in out

        conn = sqlite3.connect(cli_settings.sqlite_path)
        content, backup, blocks_content = conn.execute(
            "SELECT content, content_backup, blocks_content FROM documents WHERE id = 'legacy'"
        ).fetchone()
        conn.close()
        assert content == "# Old\n- one\n- two"
        assert backup == content
        assert [b["type"] for b in json.loads(blocks_content)["blocks"]] == [
            "heading-1", "bulleted-list", "bulleted-list",
        ]

    def test_migrate_reports_failures(
        self, cli_settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert cli.main(["migrate", "missing"]) == 1

        assert "missing: Error: Document not found" in capsys.readouterr().out

    def test_rest_store_without_url(
        self,
        cli_settings: Settings,
        capsys: pytest.CaptureFixture[str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(cli, "settings", Settings(data_dir=cli_settings.data_dir, rest_url=None))

        assert cli.main(["--store", "rest", "show", "x"]) == 1
        assert "PAGECRAFT_REST_URL" in capsys.readouterr().out

    def test_memory_store_new(
        self, cli_settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert cli.main(["--store", "memory", "new", "Scratch"]) == 0
        assert "Title: Scratch" in capsys.readouterr().out

    def test_command_is_required(self, cli_settings: Settings) -> None:
        with pytest.raises(SystemExit):
            cli.main([])

    def test_rest_store_is_closed_on_the_command_loop(
        self,
        cli_settings: Settings,
        capsys: pytest.CaptureFixture[str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        loops = []

        def handler(request: httpx.Request) -> httpx.Response:
            loops.append(asyncio.get_running_loop())
            return httpx.Response(200, json=[{"id": "d1", "title": "Remote", "content": "# Hi"}])

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        store = RestDocumentStore("https://db.example.com", client=client)

        async def close() -> None:
            loops.append(asyncio.get_running_loop())
            await client.aclose()

        monkeypatch.setattr(store, "aclose", close)
        monkeypatch.setattr(cli, "create_store", lambda config: store)

        assert cli.main(["--store", "rest", "export", "d1"]) == 0

        assert capsys.readouterr().out == "# Hi\n"
        assert len(loops) == 2
        assert loops[0] is loops[1]
        assert client.is_closed
