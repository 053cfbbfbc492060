"""
Unit tests for OutcomeStore.

Tests corpus de-duplication, the classification log and outcome transitions.
"""

import json

import pytest

from unitsync.core.errors import ErrorKind, FetchError, NotFoundError
from unitsync.core.models import CompetencyRecord, Invalid, Pending, Present
from unitsync.storage.outcome_store import OutcomeStore


def make_record(code, title="Sample unit"):
    return CompetencyRecord(url=f"https://training.gov.au/training/details/{code}/unitdetails", code=code, title=title)


def corpus_lines(store):
    return [line for line in store.corpus_path.read_text(encoding="utf-8").splitlines() if line.strip()]


@pytest.mark.unit
class TestOutcomeStore:
    """Test OutcomeStore persistence."""

    @pytest.fixture
    def data_dir(self, tmp_path):
        return tmp_path / "data"

    @pytest.mark.asyncio
    async def test_load_creates_layout(self, data_dir):
        store = await OutcomeStore(data_dir).load()
        assert store.loaded
        assert store.corpus_path.exists()
        assert store.units_dir.is_dir()
        assert store.snapshot() == {}

    @pytest.mark.asyncio
    async def test_record_success_writes_corpus_and_unit_file(self, data_dir):
        store = await OutcomeStore(data_dir).load()
        outcome = await store.record_success(make_record("BSBWHS521"))

        assert isinstance(outcome, Present)
        lines = corpus_lines(store)
        assert len(lines) == 1
        assert json.loads(lines[0])["code"] == "BSBWHS521"
        unit_file = json.loads((store.units_dir / "BSBWHS521.json").read_text(encoding="utf-8"))
        assert unit_file["title"] == "Sample unit"

    @pytest.mark.asyncio
    async def test_rewrite_keeps_single_line(self, data_dir):
        store = await OutcomeStore(data_dir).load()
        await store.record_success(make_record("MARB027", title="first"))
        await store.record_success(make_record("MARA022"))
        await store.record_success(make_record("MARB027", title="second"))

        lines = [json.loads(line) for line in corpus_lines(store)]
        assert [line["code"] for line in lines] == ["MARA022", "MARB027"]
        assert lines[1]["title"] == "second"

        reloaded = await OutcomeStore(data_dir).load()
        assert reloaded.outcome("MARB027").record.title == "second"

    @pytest.mark.asyncio
    async def test_load_last_line_wins_and_skips_bad_lines(self, data_dir):
        data_dir.mkdir(parents=True)
        first = make_record("MARB027", title="old").to_dict()
        second = make_record("MARB027", title="new").to_dict()
        (data_dir / "uoc.jsonl").write_text(
            json.dumps(first) + "\n{not json\n" + json.dumps({"title": "no code"}) + "\n" + json.dumps(second) + "\n",
            encoding="utf-8",
        )

        store = await OutcomeStore(data_dir).load()
        assert store.present_codes() == {"MARB027"}
        assert store.outcome("MARB027").record.title == "new"

    @pytest.mark.asyncio
    async def test_not_found_becomes_invalid(self, data_dir):
        store = await OutcomeStore(data_dir).load()
        outcome = await store.record_failure("INVALID001", NotFoundError("INVALID001", "Unit does not exist (404)"))

        assert isinstance(outcome, Invalid)
        assert outcome.reason == "Unit does not exist (404)"
        assert "INVALID001" not in store.pending

    @pytest.mark.asyncio
    async def test_transient_failure_increments_attempts(self, data_dir):
        store = await OutcomeStore(data_dir).load()
        error = FetchError("https://x", ErrorKind.TIMEOUT, "Timeout 30000ms exceeded", attempts=3)

        first = await store.record_failure("TIMEOUT001", error)
        second = await store.record_failure("TIMEOUT001", error)

        assert isinstance(second, Pending)
        assert first.attempts == 1
        assert second.attempts == 2
        assert second.last_error == "FetchFailed:TIMEOUT:Timeout 30000ms exceeded"

    @pytest.mark.asyncio
    async def test_timeout_on_code_containing_404_stays_pending(self, data_dir):
        store = await OutcomeStore(data_dir).load()
        url = "https://training.gov.au/training/details/BSBOPS404/unitdetails"
        error = FetchError(
            url,
            ErrorKind.TIMEOUT,
            f'Timeout 30000ms exceeded.\n=========================== logs ===========================\n'
            f'navigating to "{url}", waiting until "networkidle"',
            attempts=3,
        )

        outcome = await store.record_failure("BSBOPS404", error)

        assert isinstance(outcome, Pending)
        assert outcome.attempts == 1
        assert "BSBOPS404" not in store.invalid

    @pytest.mark.asyncio
    async def test_success_clears_pending(self, data_dir):
        store = await OutcomeStore(data_dir).load()
        await store.record_failure("MARB027", RuntimeError("socket hang up"))
        await store.record_success(make_record("MARB027"))
        assert isinstance(store.outcome("MARB027"), Present)
        assert store.pending == {}

    @pytest.mark.asyncio
    async def test_failure_after_success_keeps_record(self, data_dir):
        store = await OutcomeStore(data_dir).load()
        await store.record_success(make_record("MARB027"))
        outcome = await store.record_failure("MARB027", NotFoundError("MARB027"))
        assert isinstance(outcome, Present)
        assert store.invalid == {}

    @pytest.mark.asyncio
    async def test_classification_log_round_trip(self, data_dir):
        store = await OutcomeStore(data_dir).load()
        await store.record_failure("INVALID001", NotFoundError("INVALID001"))
        await store.record_failure("TIMEOUT001", RuntimeError("Timeout 30000ms exceeded"))
        path = await store.save_classification_log({"total_checked": 2, "valid": 0})

        payload = json.loads(path.read_text(encoding="utf-8"))
        assert payload["summary"] == {"total_checked": 2, "valid": 0, "invalid": 1, "errors": 1}
        assert payload["invalid_units"][0]["code"] == "INVALID001"
        assert payload["invalid_units"][0]["reason"] == "404 - Unit not found"
        assert payload["error_units"][0]["attempts"] == 1

        reloaded = await OutcomeStore(data_dir).load()
        assert isinstance(reloaded.outcome("INVALID001"), Invalid)
        assert reloaded.outcome("TIMEOUT001").attempts == 1

    @pytest.mark.asyncio
    async def test_invalid_entries_carried_forward(self, data_dir):
        store = await OutcomeStore(data_dir).load()
        await store.record_failure("INVALID001", NotFoundError("INVALID001"))
        await store.save_classification_log()

        # A later run that fetched nothing rewrites the log
        later = await OutcomeStore(data_dir).load()
        await later.save_classification_log({"total_checked": 0})
        payload = json.loads(later.log_path.read_text(encoding="utf-8"))
        assert [entry["code"] for entry in payload["invalid_units"]] == ["INVALID001"]

    @pytest.mark.asyncio
    async def test_present_record_outranks_log_entry(self, data_dir):
        data_dir.mkdir(parents=True)
        (data_dir / "uoc.jsonl").write_text(json.dumps(make_record("MARB027").to_dict()) + "\n", encoding="utf-8")
        (data_dir / "error-log.json").write_text(json.dumps({
            "invalid_units": [{"code": "MARB027", "reason": "404 - Unit not found"}],
            "error_units": [{"code": "MARA022", "error": "x", "attempts": 2}],
        }), encoding="utf-8")

        store = await OutcomeStore(data_dir).load()
        snapshot = store.snapshot()
        assert isinstance(snapshot["MARB027"], Present)
        assert snapshot["MARA022"].attempts == 2

    @pytest.mark.asyncio
    async def test_unreadable_log_ignored(self, data_dir):
        data_dir.mkdir(parents=True)
        (data_dir / "error-log.json").write_text("{oops", encoding="utf-8")
        store = await OutcomeStore(data_dir).load()
        assert store.snapshot() == {}
