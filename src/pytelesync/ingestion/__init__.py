"""Ingestion layer.

Helpers that turn raw feed payloads (JSON bridges, ELM327 OBD-II
responses) into complete readings before they reach the store.
"""

__all__: list[str] = []
