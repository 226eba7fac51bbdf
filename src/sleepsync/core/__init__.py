"""Shared infrastructure: config, errors, events, clock, storage, auth."""
