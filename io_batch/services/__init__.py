"""Bulk job services: the in-memory processor and the persisted executor."""
