"""
PageLoad Backend Package.

FastAPI service that aggregates PageSpeed Insights audit data for a URL and
turns it into a bounded, low-latency response plus a ranked set of
"why is this page slow" diagnoses.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration and dependencies
    - models: Pydantic schemas and enums
    - services: Upstream client, cache, rate limiter, extraction, diagnosis, orchestration
"""

__version__ = "1.0.0"
