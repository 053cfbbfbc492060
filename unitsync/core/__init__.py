"""Core domain: identifiers, outcomes, planning and errors."""

from .errors import ErrorKind, FetchError, InputUnavailableError, NotFoundError, UnitSyncError
from .identifiers import extract_identifiers, is_valid_identifier
from .models import CompetencyRecord, EvidenceGroup, Invalid, Pending, Present, Section, UnitElement, UnitLink
from .planner import SyncPlan, plan_sync

__all__ = [
    "ErrorKind",
    "FetchError",
    "InputUnavailableError",
    "NotFoundError",
    "UnitSyncError",
    "extract_identifiers",
    "is_valid_identifier",
    "CompetencyRecord",
    "EvidenceGroup",
    "Invalid",
    "Pending",
    "Present",
    "Section",
    "UnitElement",
    "UnitLink",
    "SyncPlan",
    "plan_sync",
]
