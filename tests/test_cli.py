"""Tests for CLI argument parsing and the process/packages commands."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from sectionforge.cli import _build_parser, _write_module, main
from sectionforge.processing.schemas import CombinedModule
from tests.fakes import ScriptedGenerator


@pytest.fixture
def cli_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Point Settings at tmp dirs and swap in a scripted generator."""
    monkeypatch.setenv("PACKAGES_DIR", str(tmp_path / "packages"))
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("LITELLM_MODEL_CHAIN", "test/model-a")
    with patch(
        "sectionforge.services.pipeline_service.LLMContentGenerator",
        side_effect=lambda settings: ScriptedGenerator(),
    ):
        yield tmp_path
    lg = logging.getLogger("sectionforge.pipeline")
    for h in list(lg.handlers):
        if isinstance(h, logging.FileHandler):
            lg.removeHandler(h)
            h.close()


def _write_splitting(path: Path, n: int = 3) -> Path:
    path.write_text(
        json.dumps({
            "sections": [
                {"id": f"s{i}", "type": "content", "priority": i}
                for i in range(1, n + 1)
            ],
            "recommendedBatchSize": 2,
        }),
        encoding="utf-8",
    )
    return path


class TestArgParser:
    def test_version_flag(self) -> None:
        args = _build_parser().parse_args(["--version"])
        assert args.version is True

    def test_process_defaults(self) -> None:
        args = _build_parser().parse_args(["process", "split.json"])
        assert args.command == "process"
        assert args.splitting_file == "split.json"
        assert args.batch_size is None
        assert args.threshold is None
        assert args.no_skip is False
        assert args.package is False
        assert args.format == "zip"
        assert args.compression == "best"
        assert args.output_dir == "sectionforge-output"

    def test_process_with_options(self) -> None:
        args = _build_parser().parse_args([
            "process",
            "split.json",
            "--batch-size",
            "4",
            "--threshold",
            "60",
            "--no-skip",
            "--package",
            "--format",
            "tar",
            "-o",
            "./out",
            "-v",
        ])
        assert args.batch_size == 4
        assert args.threshold == 60.0
        assert args.no_skip is True
        assert args.format == "tar"
        assert args.output_dir == "./out"
        assert args.verbose is True

    def test_packages_subcommands(self) -> None:
        parser = _build_parser()
        args = parser.parse_args(["packages", "list", "--author", "ci"])
        assert args.packages_command == "list"
        assert args.author == "ci"
        args = parser.parse_args(["packages", "info", "pkg_1"])
        assert args.package_id == "pkg_1"

    def test_no_command(self) -> None:
        assert _build_parser().parse_args([]).command is None


class TestWriteModule:
    def test_writes_module_files(self, tmp_path: Path) -> None:
        module = CombinedModule(
            fields=({"name": "s1_title", "label": "Title"},),
            meta={"label": "Combined Module", "content_types": ["page"]},
            html="<div>hi</div>",
            css=".a {}",
        )
        out = tmp_path / "out"
        _write_module(module, out)
        assert (out / "module.html").read_text() == "<div>hi</div>"
        assert (out / "module.css").read_text() == ".a {}"
        fields = json.loads((out / "fields.json").read_text())
        assert fields[0]["name"] == "s1_title"
        meta = json.loads((out / "meta.json").read_text())
        assert meta["label"] == "Combined Module"


class TestProcessCommand:
    def test_process_writes_module(
        self, cli_env: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        split = _write_splitting(cli_env / "split.json")
        out = cli_env / "out"
        main(["process", str(split), "-o", str(out)])
        printed = capsys.readouterr().out
        assert "Processing 3 sections" in printed
        assert "3 completed, 0 failed, 0 skipped" in printed
        assert (out / "module.html").is_file()
        assert (out / "fields.json").is_file()

    def test_process_and_package(
        self, cli_env: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        split = _write_splitting(cli_env / "split.json")
        main([
            "process",
            str(split),
            "-o",
            str(cli_env / "out"),
            "--package",
            "--name",
            "landing",
        ])
        printed = capsys.readouterr().out
        assert "Package:" in printed
        packages = list((cli_env / "packages").iterdir())
        assert len(packages) == 1

        main(["packages", "list"])
        listed = capsys.readouterr().out
        assert packages[0].name in listed
        assert "landing" in listed

        main(["packages", "delete", packages[0].name])
        assert not packages[0].exists()

    def test_missing_file_exits(self, cli_env: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["process", str(cli_env / "nope.json")])
        assert exc_info.value.code == 1

    def test_invalid_json_exits(self, cli_env: Path) -> None:
        bad = cli_env / "bad.json"
        bad.write_text("{nope", encoding="utf-8")
        with pytest.raises(SystemExit) as exc_info:
            main(["process", str(bad)])
        assert exc_info.value.code == 1

    def test_list_input_accepted(
        self, cli_env: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        split = cli_env / "list.json"
        split.write_text(
            json.dumps([{"id": "a"}, {"id": "b"}]), encoding="utf-8"
        )
        main(["process", str(split), "-o", str(cli_env / "out")])
        assert "Processing 2 sections" in capsys.readouterr().out

    def test_nothing_usable_exits_nonzero(
        self, cli_env: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        split = _write_splitting(cli_env / "split.json", n=2)
        with pytest.raises(SystemExit) as exc_info:
            main(["process", str(split), "--threshold", "100"])
        assert exc_info.value.code == 1
        assert "0 completed" in capsys.readouterr().out


class TestPackagesCommand:
    def test_info_unknown_exits(self, cli_env: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["packages", "info", "pkg_ffffffffffff"])
        assert exc_info.value.code == 1

    def test_list_empty(
        self, cli_env: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        main(["packages", "list"])
        assert "No packages." in capsys.readouterr().out

    def test_purge(
        self, cli_env: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        main(["packages", "purge"])
        assert "Purged 0 expired package(s)" in capsys.readouterr().out
