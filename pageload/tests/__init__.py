'''
PageLoad Test Suite

Test Modules:
-------------
- test_upstream.py: PageSpeed Insights client
  - FetchOk / FetchErr for every outcome, nothing raised
  - Total-call timeout, body snippets capped at 2000 chars
  - Repeated category params, locale and key passthrough
  - Provider cookies never sent back

- test_cache.py: Response cache
  - 5 minute success TTL, 30 second failure TTL
  - Size cap, expired entries swept before live ones

- test_rate_limit.py: Sliding-window rate limiter
  - 10 requests per 60s window, retry-after rounding
  - Pruning of expired windows, forwarded-address client identity

- test_extraction.py: Metric extraction from PSI payloads
- test_diagnosis.py: Diagnosis rules, ranking and fallback
- test_orchestrator.py: Caching, rate limiting and status derivation end to end
- test_api.py: GET /api/pageload over FastAPI's TestClient

Running Tests:
--------------
    pip install -e ".[test]"
    pytest pageload/tests -v

Configuration:
--------------
See conftest.py for shared fixtures (manual clock, payload builders, mock upstream).
'''

__all__ = []
