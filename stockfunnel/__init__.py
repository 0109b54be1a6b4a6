"""Multi-stage equity screening funnel."""

__version__ = "0.1.0"
