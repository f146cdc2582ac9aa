"""wallcal - calendar aggregation for a wall-display dashboard.

Fetches a remote iCal feed through a chain of CORS proxies, expands yearly
recurring events, and merges the result with locally stored custom events and
project target dates into a per-day calendar grid.
"""

__version__ = "0.1.0"
