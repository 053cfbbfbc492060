"""Persistence of unit outcomes (corpus and classification log)."""

from .outcome_store import OutcomeStore

__all__ = ["OutcomeStore"]
