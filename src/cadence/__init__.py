"""cadence: recurring task series and their materialized instances."""

__version__ = "0.3.0"
