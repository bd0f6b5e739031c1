"""Shared building blocks: settings, logging, errors, retry, ids, schemas."""
