"""
Shared utilities for the repository cache layer.

This package aggregates common building blocks consumed by the repository
operations and the admin service:

- config: Repository configuration via pydantic-settings
- logging: Structured logging with request/operation correlation
- metrics: Cache counters and per-operation latency, mirrored to Prometheus
- errors: Canonical error types and responses
- retry: Bounded retry policy for transactions
- base_service: FastAPI service scaffolding
- test_helpers: In-memory store, clocks and recording collaborators for tests

Do not import from service_* packages into shared/.
"""
