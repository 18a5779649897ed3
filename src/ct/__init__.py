"""Run a test suite against every commit in a range, caching successes by tree."""

__version__ = "0.1.0"
