"""sleepsync: sleep/wake events from calendar feeds and Google Fit, written into markdown journals."""

__version__ = "0.1.0"
