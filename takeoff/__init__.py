"""Drawing takeoff: multi-stage extraction and reconciliation of construction drawings."""

__version__ = "0.1.0"
