"""Multi-tenant event tracking service.

Tenants own applications, applications define events, and client
applications log sessions and event occurrences through an
API-key-authenticated ingestion path that relays to Kafka.
"""

__version__ = "0.1.0"
