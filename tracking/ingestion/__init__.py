"""Ingestion service: stream publisher, services, auth and HTTP routes.

The FastAPI app lives in ``tracking.ingestion.main`` and is not imported
here, so the services can be used without loading the web layer.
"""
