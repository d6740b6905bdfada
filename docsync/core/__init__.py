"""Core import engine: discovery, fetching, rewriting and reconciliation."""
