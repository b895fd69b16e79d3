"""
Rules Service package for the SRS Rules Proxy.

This package answers ``POST /rule``: given a rule name and the caller's
database credentials it returns the matching SRS_RULES row. It provides:

- app.main: API surface for rule lookups and health.
- app.lookup: Request models, connection factories and the lookup executor.
- app.cache: Process-local TTL cache of lookup results.
- app.origin_gate: CORS allow-list enforcement.

Guidelines:
- Credentials live only for the request; the password is never cached or logged.
- One connection per lookup, always closed; no retries.
- Failures are never cached.
"""
