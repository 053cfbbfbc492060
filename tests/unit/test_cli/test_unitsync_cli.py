"""Tests for the unitsync command line."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from openpyxl import Workbook

from unitsync import __version__
from unitsync.cli.commands.scrape import resolve_targets
from unitsync.cli.main import cli
from unitsync.core.constants import unit_url
from unitsync.sync import run_sync


@pytest.fixture
def runner(monkeypatch):
    for key in ("UNITSYNC_INPUT", "UNITSYNC_INPUT_COLUMN", "UNITSYNC_OUTPUT", "UNITSYNC_DATA_DIR"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("UNITSYNC_SCRAPE_RATE_LIMIT", "0")
    return CliRunner()


@pytest.fixture
def workbook(tmp_path):
    wb = Workbook()
    sheet = wb.active
    sheet.append(["Unit Code", "Comment"])
    sheet.append(["MARB027", "Complete SCUBA first"])
    sheet.append(["BSBWHS521", None])
    path = tmp_path / "units.xlsx"
    wb.save(str(path))
    return path


class TestCliBasics:
    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("sync", "scrape", "plan", "export", "codes"):
            assert command in result.output


class TestCodesCommand:
    def test_lists_codes(self, runner, workbook):
        result = runner.invoke(cli, ["codes", str(workbook)])
        assert result.exit_code == 0
        assert result.output.splitlines()[:2] == ["BSBWHS521", "MARB027"]
        assert "2 codes" in result.output

    def test_column_filter(self, runner, workbook):
        result = runner.invoke(cli, ["codes", str(workbook), "--column", "Comment"])
        assert result.exit_code == 0
        assert "MARB027" not in result.output
        assert "0 codes" in result.output

    def test_missing_workbook(self, runner, tmp_path):
        result = runner.invoke(cli, ["codes", str(tmp_path / "missing.xlsx")])
        assert result.exit_code == 1
        assert "Input workbook unavailable" in result.output


class TestPlanCommand:
    def test_plan_json(self, runner, workbook, tmp_path):
        data_dir = tmp_path / "data"
        data_dir.mkdir()
        (data_dir / "error-log.json").write_text(json.dumps({
            "invalid_units": [{"code": "BSBWHS521", "reason": "404 - Unit not found"}],
            "error_units": [],
        }))

        result = runner.invoke(cli, ["plan", "--input", str(workbook), "--data-dir", str(data_dir), "--json"])

        assert result.exit_code == 0
        plan = json.loads(result.stdout)
        assert plan["invalid"] == ["BSBWHS521"]
        assert plan["new"] == ["MARB027"]

    def test_plan_json_reports_error(self, runner, tmp_path):
        result = runner.invoke(cli, [
            "plan", "--input", str(tmp_path / "missing.xlsx"), "--data-dir", str(tmp_path), "--json",
        ])

        assert result.exit_code == 1
        assert '"error_code": "INPUT_UNAVAILABLE"' in result.stdout

    def test_plan_requires_input(self, runner, tmp_path):
        result = runner.invoke(cli, ["plan", "--data-dir", str(tmp_path)])
        assert result.exit_code == 1
        assert "No input workbook" in result.output


class TestSyncCommand:
    def test_requires_input(self, runner, tmp_path):
        result = runner.invoke(cli, ["sync", "--data-dir", str(tmp_path)])
        assert result.exit_code == 1
        assert "No input workbook" in result.output

    def test_rejects_concurrency_out_of_range(self, runner, workbook):
        result = runner.invoke(cli, ["sync", "--input", str(workbook), "--concurrency", "9"])
        assert result.exit_code == 2

    def test_full_run(self, runner, workbook, tmp_path, fake_fetcher, unit_page_factory):
        fetcher = fake_fetcher({
            unit_url("MARB027"): unit_page_factory("MARB027"),
            unit_url("BSBWHS521"): unit_page_factory("BSBWHS521"),
        })
        output = tmp_path / "units-out.xlsx"

        async def fake_run(config):
            return await run_sync(config, fetcher=fetcher)

        with patch("unitsync.cli.commands.sync.run_sync", new=fake_run):
            result = runner.invoke(cli, [
                "sync", "--input", str(workbook), "--data-dir", str(tmp_path / "data"), "--output", str(output),
            ])

        assert result.exit_code == 0, result.output
        assert "Valid:           2" in result.output
        assert output.exists()

    def test_errors_exit_nonzero(self, runner, workbook, tmp_path, fake_fetcher):
        fetcher = fake_fetcher()

        async def fake_run(config):
            return await run_sync(config, fetcher=fetcher)

        with patch("unitsync.cli.commands.sync.run_sync", new=fake_run):
            result = runner.invoke(cli, ["sync", "--input", str(workbook), "--data-dir", str(tmp_path / "data"),
                                         "--no-export"])

        assert result.exit_code == 1
        assert "run again to retry" in result.output


class TestScrapeCommand:
    def test_resolve_targets(self):
        url = "https://training.gov.au/training/details/MARB027/unitdetails"
        assert resolve_targets(("bsbwhs521", url)) == {
            "BSBWHS521": unit_url("BSBWHS521"),
            "MARB027": url,
        }

    def test_scrape_saves_units(self, runner, tmp_path, fake_fetcher, unit_page_factory):
        fetcher = fake_fetcher({unit_url("MARB027"): unit_page_factory("MARB027")})

        with patch("unitsync.cli.commands.scrape.FetchEngine", return_value=fetcher):
            result = runner.invoke(cli, ["scrape", "MARB027", "--data-dir", str(tmp_path)])

        assert result.exit_code == 0, result.output
        assert "Saved MARB027" in result.output
        assert (tmp_path / "units" / "MARB027.json").exists()
        assert fetcher.closed == 1


class TestExportCommand:
    def test_empty_corpus(self, runner, tmp_path):
        result = runner.invoke(cli, ["export", "--data-dir", str(tmp_path)])
        assert result.exit_code == 0
        assert "Corpus is empty" in result.output

    def test_default_output_path(self, runner, tmp_path, fake_fetcher, unit_page_factory):
        fetcher = fake_fetcher({unit_url("MARB027"): unit_page_factory("MARB027")})
        with patch("unitsync.cli.commands.scrape.FetchEngine", return_value=fetcher):
            runner.invoke(cli, ["scrape", "MARB027", "--data-dir", str(tmp_path)])

        result = runner.invoke(cli, ["export", "--data-dir", str(tmp_path)])

        assert result.exit_code == 0
        assert "Exported 1 units" in result.output
        assert (tmp_path / "units.xlsx").exists()
