"""Durable per-unit outcomes: the record corpus and the classification log.

Layout inside the data directory::

    uoc.jsonl         one CompetencyRecord per line (Present outcomes)
    units/<CODE>.json pretty-printed copy of each record
    error-log.json    Invalid and Pending outcomes plus the last run summary

All mutations go through one asyncio.Lock, so concurrent crawl workers never
write the same file at the same time.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

import aiofiles
import aiofiles.os

from unitsync.core.constants import (
    CLASSIFICATION_LOG_FILENAME,
    CORPUS_FILENAME,
    UNIT_CACHE_DIRNAME,
)
from unitsync.core.context import RunContext
from unitsync.core.errors import ErrorLike, NotFoundError, StorageError
from unitsync.core.models import (
    CompetencyRecord,
    Invalid,
    Outcome,
    Pending,
    Present,
    utc_timestamp,
)

logger = logging.getLogger(__name__)

NOT_FOUND_REASON = "404 - Unit not found"


class OutcomeStore:
    """Owns every per-identifier outcome and the files that persist them."""

    def __init__(self, data_dir: Union[str, Path] = "data", context: Optional[RunContext] = None):
        """
        Initialize outcome store.

        Args:
            data_dir: Directory for the corpus, unit cache and classification log
            context: Run context supplying the error classifier
        """
        self.data_dir = Path(data_dir)
        self.corpus_path = self.data_dir / CORPUS_FILENAME
        self.units_dir = self.data_dir / UNIT_CACHE_DIRNAME
        self.log_path = self.data_dir / CLASSIFICATION_LOG_FILENAME
        self.context = context or RunContext()

        self._records: Dict[str, CompetencyRecord] = {}
        self._invalid: Dict[str, Invalid] = {}
        self._pending: Dict[str, Pending] = {}
        self._lock = asyncio.Lock()
        self.loaded = False

    # -- loading -------------------------------------------------------------

    async def load(self) -> "OutcomeStore":
        """Read the corpus and classification log from disk."""
        try:
            self.units_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create data directory: {e}", path=str(self.data_dir), original_error=e)

        self._records = await self._load_corpus()
        self._invalid, self._pending = await self._load_classification_log()

        # A persisted record outranks any older failure entry
        for code in self._records:
            self._invalid.pop(code, None)
            self._pending.pop(code, None)

        self.loaded = True
        logger.info(
            f"Loaded store: {len(self._records)} present, {len(self._invalid)} invalid, "
            f"{len(self._pending)} pending"
        )
        return self

    async def _load_corpus(self) -> Dict[str, CompetencyRecord]:
        records: Dict[str, CompetencyRecord] = {}
        if not self.corpus_path.exists():
            logger.info(f"Creating new {self.corpus_path.name}")
            async with aiofiles.open(self.corpus_path, mode="w", encoding="utf-8") as f:
                await f.write("")
            return records

        async with aiofiles.open(self.corpus_path, mode="r", encoding="utf-8") as f:
            content = await f.read()

        for lineno, line in enumerate(content.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping unreadable corpus line {lineno}: {e}")
                continue
            if not isinstance(data, dict) or not data.get("code"):
                logger.warning(f"Skipping corpus line {lineno}: no unit code")
                continue
            record = CompetencyRecord.from_dict(data)
            # Last line for a code wins
            records.pop(record.code, None)
            records[record.code] = record

        return records

    async def _load_classification_log(self):
        invalid: Dict[str, Invalid] = {}
        pending: Dict[str, Pending] = {}
        if not self.log_path.exists():
            return invalid, pending

        try:
            async with aiofiles.open(self.log_path, mode="r", encoding="utf-8") as f:
                payload = json.loads(await f.read() or "{}")
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring unreadable {self.log_path.name}: {e}")
            return invalid, pending

        for entry in payload.get("invalid_units") or []:
            code = entry.get("code")
            if code:
                invalid[code] = Invalid(
                    reason=entry.get("reason") or NOT_FOUND_REASON,
                    timestamp=entry.get("timestamp") or utc_timestamp(),
                )

        for entry in payload.get("error_units") or []:
            code = entry.get("code")
            if code and code not in invalid:
                pending[code] = Pending(
                    attempts=int(entry.get("attempts") or 1),
                    last_error=entry.get("error") or "",
                    last_attempt_at=entry.get("last_attempt") or utc_timestamp(),
                )

        return invalid, pending

    # -- queries -----------------------------------------------------------------

    def snapshot(self) -> Dict[str, Outcome]:
        """Current outcome for every known identifier."""
        outcomes: Dict[str, Outcome] = {}
        outcomes.update(self._pending)
        outcomes.update(self._invalid)
        outcomes.update({code: Present(record) for code, record in self._records.items()})
        return outcomes

    def outcome(self, code: str) -> Optional[Outcome]:
        if code in self._records:
            return Present(self._records[code])
        return self._invalid.get(code) or self._pending.get(code)

    def present_codes(self) -> Set[str]:
        return set(self._records)

    def iter_records(self) -> List[CompetencyRecord]:
        """Corpus records in file order."""
        return list(self._records.values())

    @property
    def invalid(self) -> Dict[str, Invalid]:
        return dict(self._invalid)

    @property
    def pending(self) -> Dict[str, Pending]:
        return dict(self._pending)

    # -- mutations -------------------------------------------------------------------

    async def record_success(self, record: CompetencyRecord) -> Present:
        """Persist a record, replacing any earlier line for the same code."""
        async with self._lock:
            try:
                if record.code in self._records:
                    logger.debug(f"Update unit {record.code}")
                    await self._remove_corpus_lines(record.code)

                async with aiofiles.open(self.corpus_path, mode="a", encoding="utf-8") as f:
                    await f.write(json.dumps(record.to_dict(), ensure_ascii=False) + "\n")

                unit_path = self.units_dir / f"{record.code}.json"
                async with aiofiles.open(unit_path, mode="w", encoding="utf-8") as f:
                    await f.write(json.dumps(record.to_dict(), indent=2, ensure_ascii=False))
            except OSError as e:
                raise StorageError(f"Failed to persist {record.code}: {e}", path=str(self.corpus_path), original_error=e)

            self._records.pop(record.code, None)
            self._records[record.code] = record
            self._invalid.pop(record.code, None)
            self._pending.pop(record.code, None)
            return Present(record)

    async def _remove_corpus_lines(self, code: str) -> None:
        async with aiofiles.open(self.corpus_path, mode="r", encoding="utf-8") as f:
            content = await f.read()

        kept = []
        for line in content.splitlines():
            if not line.strip():
                continue
            try:
                if json.loads(line).get("code") == code:
                    continue
            except (json.JSONDecodeError, AttributeError):
                pass  # keep lines we cannot read
            kept.append(line)

        tmp_path = self.corpus_path.with_suffix(".jsonl.tmp")
        async with aiofiles.open(tmp_path, mode="w", encoding="utf-8") as f:
            await f.write("".join(line + "\n" for line in kept))
        await aiofiles.os.replace(tmp_path, self.corpus_path)

    async def record_failure(self, code: str, error: ErrorLike) -> Outcome:
        """Classify a failed fetch or extraction for code.

        Not-found failures become Invalid and are never retried. Anything else
        becomes Pending with the attempt counter incremented.
        """
        classifier = self.context.classifier
        message = classifier.describe(error) or "Unknown error"

        async with self._lock:
            if code in self._records:
                # Present only transitions to Present; keep the stored record
                logger.warning(f"Refresh of {code} failed, keeping stored record: {message}")
                return Present(self._records[code])

            if classifier.is_not_found(error):
                reason = error.reason if isinstance(error, NotFoundError) else NOT_FOUND_REASON
                outcome: Outcome = Invalid(reason=reason)
                self._invalid[code] = outcome
                self._pending.pop(code, None)
                logger.info(f"{code} marked invalid: {reason}")
            else:
                previous = self._pending.get(code)
                attempts = previous.attempts + 1 if previous else 1
                outcome = Pending(attempts=attempts, last_error=message)
                self._pending[code] = outcome
                logger.info(f"{code} pending (attempt {attempts}): {message}")
            return outcome

    async def save_classification_log(self, summary: Optional[Dict[str, Any]] = None) -> Path:
        """Rewrite error-log.json with every Invalid and Pending outcome.

        Invalid entries from earlier runs are carried forward so they keep
        being skipped.
        """
        async with self._lock:
            payload = {
                "timestamp": utc_timestamp(),
                "summary": {
                    "total_checked": 0,
                    "valid": 0,
                    "invalid": len(self._invalid),
                    "errors": len(self._pending),
                    **(summary or {}),
                },
                "invalid_units": [outcome.to_dict(code) for code, outcome in sorted(self._invalid.items())],
                "error_units": [outcome.to_dict(code) for code, outcome in sorted(self._pending.items())],
            }
            try:
                async with aiofiles.open(self.log_path, mode="w", encoding="utf-8") as f:
                    await f.write(json.dumps(payload, indent=2, ensure_ascii=False))
            except OSError as e:
                raise StorageError(f"Failed to write classification log: {e}", path=str(self.log_path), original_error=e)

        logger.debug(f"Classification log saved to {self.log_path}")
        return self.log_path
