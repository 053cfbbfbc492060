"""unitsync package exports.

Keep package import lightweight by lazily importing heavy modules.
"""

from typing import TYPE_CHECKING, Any

__version__ = "1.0.0"

if TYPE_CHECKING:
    from .config import AppConfig
    from .sync import SyncRunner

__all__ = ["AppConfig", "SyncRunner", "load_config", "run_sync"]


def __getattr__(name: str) -> Any:
    """Lazily resolve top-level exports."""
    if name in {"AppConfig", "load_config"}:
        from .config import AppConfig, load_config

        return AppConfig if name == "AppConfig" else load_config

    if name in {"SyncRunner", "run_sync"}:
        from .sync import SyncRunner, run_sync

        return SyncRunner if name == "SyncRunner" else run_sync

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
