"""
Shared utilities for querycache.

- config: Settings via pydantic-settings
- logging: Structured logging with correlation context
- errors: Canonical error types and responses
- metrics: Prometheus cache metrics

Do not import from caching/, host/ or adapters/ into shared/.
"""
