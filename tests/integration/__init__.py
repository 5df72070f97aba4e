"""Integration tests for the ballot stores.

These tests run the store implementations against live PostgreSQL and Redis
servers. Connection settings come from the POSTGRES_* and REDIS_* environment
variables; tests are skipped when a server is not reachable.
"""
