"""Bundled sleep sources."""
