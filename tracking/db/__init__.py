"""Persistence layer: engine/session setup, ORM models and repositories."""
