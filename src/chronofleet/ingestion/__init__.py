"""Ingestion layer.

Adapters that turn raw event-stream payloads into normalized position
samples and status updates. Only the state layer merges them.
"""

__all__: list[str] = []
