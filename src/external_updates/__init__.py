"""Update availability checks against external metadata endpoints."""

from external_updates.engine import CheckOutcome, CheckReport, UpdateCheckEngine
from external_updates.host import UpdateHost
from external_updates.version import __version__

__all__ = ["CheckOutcome", "CheckReport", "UpdateCheckEngine", "UpdateHost", "__version__"]
