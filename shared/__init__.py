"""
Shared utilities for the Shop Cache Access Layer.

This package aggregates common building blocks consumed by the services:

- config: Service and cache configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorators and backoff policies
- base_service: FastAPI service scaffolding

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
