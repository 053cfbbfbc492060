"""End-to-end tests for incremental sync runs (no network)."""

import json

import pytest
from openpyxl import Workbook, load_workbook
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from unitsync.config import AppConfig, SyncConfig
from unitsync.core.constants import unit_url
from unitsync.core.errors import InputUnavailableError
from unitsync.core.models import Invalid, Pending
from unitsync.scrape.config import ScrapeConfig
from unitsync.scrape.fetcher import FetchEngine
from unitsync.sync import SyncRunner, run_sync
from unitsync.storage.outcome_store import OutcomeStore


def make_config(tmp_path, **sync):
    settings = {"data_dir": tmp_path / "data"}
    settings.update(sync)
    return AppConfig(
        sync=SyncConfig(**settings),
        scrape=ScrapeConfig(rate_limit=0, settle_delay=0, backoff=0, max_retries=2),
    )


@pytest.fixture
def workbook(tmp_path):
    wb = Workbook()
    sheet = wb.active
    sheet.append(["Unit", "Notes"])
    sheet.append(["MARA022", "SCUBA"])
    sheet.append(["HLTAID011", None])
    path = tmp_path / "units.xlsx"
    wb.save(str(path))
    return path


@pytest.fixture
def catalog(unit_page_factory):
    return {
        unit_url("MARA022"): unit_page_factory("MARA022", title="Manage a vessel"),
        unit_url("HLTAID011"): unit_page_factory("HLTAID011", title="Provide first aid"),
        unit_url("MARB027"): unit_page_factory("MARB027", title="Perform basic deck work"),
        unit_url("INVALID001"): "<html><body><h1>404</h1><p>Page not found</p></body></html>",
    }


class TestSyncRun:
    @pytest.mark.asyncio
    async def test_workbook_codes_synced_and_exported(self, tmp_path, workbook, catalog, fake_fetcher):
        output = tmp_path / "out" / "units.xlsx"
        config = make_config(tmp_path, input_path=workbook, output_excel=output)
        fetcher = fake_fetcher(catalog)

        result = await run_sync(config, fetcher=fetcher)

        assert result.plan.new == ["HLTAID011", "MARA022"]
        assert sorted(result.valid) == ["HLTAID011", "MARA022"]
        assert not result.has_errors
        # Validation and extraction share one rendering per page
        assert sorted(fetcher.calls) == [unit_url("HLTAID011"), unit_url("MARA022")]
        assert fetcher.closed == 1

        sheet = load_workbook(str(output))["Units"]
        units = {row[0] for row in sheet.iter_rows(min_row=2, values_only=True)}
        assert units == {"HLTAID011 Provide first aid", "MARA022 Manage a vessel"}

    @pytest.mark.asyncio
    async def test_second_run_fetches_nothing(self, tmp_path, workbook, catalog, fake_fetcher):
        config = make_config(tmp_path, input_path=workbook)
        await run_sync(config, fetcher=fake_fetcher(catalog))

        fetcher = fake_fetcher(catalog)
        result = await run_sync(config, fetcher=fetcher)

        assert result.plan.present == ["HLTAID011", "MARA022"]
        assert result.total_checked == 0
        assert fetcher.calls == []

    @pytest.mark.asyncio
    async def test_invalid_unit_never_refetched(self, tmp_path, catalog, fake_fetcher):
        config = make_config(tmp_path)

        first = await run_sync(config, codes=["INVALID001"], fetcher=fake_fetcher(catalog))
        assert first.invalid == ["INVALID001"]

        fetcher = fake_fetcher(catalog)
        second = await run_sync(config, codes=["INVALID001"], fetcher=fetcher)
        assert second.plan.invalid == ["INVALID001"]
        assert fetcher.calls == []

        payload = json.loads((tmp_path / "data" / "error-log.json").read_text(encoding="utf-8"))
        assert payload["invalid_units"][0]["code"] == "INVALID001"
        assert payload["invalid_units"][0]["reason"] == "Unit does not exist (404)"

    @pytest.mark.asyncio
    async def test_transient_failure_abandoned_after_max_retries(self, tmp_path, fake_browser):
        config = make_config(tmp_path, max_retries=3)
        timeout = PlaywrightTimeoutError("Timeout 30000ms exceeded")

        for run in range(1, 4):
            browser = fake_browser([timeout] * 10)
            engine = FetchEngine(config.scrape, launcher=lambda b=browser: _ready(b))
            result = await SyncRunner(config, fetcher=engine).run(["TIMEOUT001"])

            assert result.errors == ["TIMEOUT001"]
            # One scheduler try per run, each spending every engine attempt
            assert len(browser.gotos) == config.scrape.max_retries
            outcome = (await OutcomeStore(config.sync.data_dir).load()).outcome("TIMEOUT001")
            assert isinstance(outcome, Pending)
            assert outcome.attempts == run
            assert outcome.last_error.startswith("FetchFailed:TIMEOUT:")
            assert browser.closed == 1

        browser = fake_browser()
        engine = FetchEngine(config.scrape, launcher=lambda: _ready(browser))
        result = await SyncRunner(config, fetcher=engine).run(["TIMEOUT001"])

        assert result.plan.exhausted == ["TIMEOUT001"]
        assert browser.gotos == []

    @pytest.mark.asyncio
    async def test_pending_unit_recovers(self, tmp_path, catalog, fake_fetcher):
        config = make_config(tmp_path)
        await run_sync(config, codes=["MARB027"], fetcher=fake_fetcher({}))

        result = await run_sync(config, codes=["MARB027"], fetcher=fake_fetcher(catalog))

        assert result.plan.retry == ["MARB027"]
        assert result.valid == ["MARB027"]
        store = await OutcomeStore(config.sync.data_dir).load()
        assert store.pending == {}

    @pytest.mark.asyncio
    async def test_without_validation_pass(self, tmp_path, catalog, fake_fetcher):
        config = make_config(tmp_path, validate_first=False)
        fetcher = fake_fetcher(catalog)

        result = await run_sync(config, codes=["MARB027", "INVALID001"], fetcher=fetcher)

        assert result.valid == ["MARB027"]
        assert result.invalid == ["INVALID001"]
        assert isinstance((await OutcomeStore(config.sync.data_dir).load()).outcome("INVALID001"), Invalid)

    @pytest.mark.asyncio
    async def test_summary_written(self, tmp_path, catalog, fake_fetcher):
        config = make_config(tmp_path)
        await run_sync(config, codes=["MARB027", "INVALID001", "TIMEOUT001"], fetcher=fake_fetcher(catalog))

        payload = json.loads((tmp_path / "data" / "error-log.json").read_text(encoding="utf-8"))
        assert payload["summary"] == {"total_checked": 3, "valid": 1, "invalid": 1, "errors": 1}
        assert [e["code"] for e in payload["error_units"]] == ["TIMEOUT001"]

    @pytest.mark.asyncio
    async def test_missing_workbook_aborts_before_fetching(self, tmp_path, fake_fetcher):
        config = make_config(tmp_path, input_path=tmp_path / "missing.xlsx")
        fetcher = fake_fetcher()

        with pytest.raises(InputUnavailableError):
            await run_sync(config, fetcher=fetcher)

        assert fetcher.calls == []


async def _ready(browser):
    return browser
