"""
Caching proxy service package.

The proxy fronts one or more upstream HTTP sources and answers from Redis
when it can:
- Cache gate: one lookup per request, every cache fault folded into a miss
- Resource fetcher: upstream call on a miss, write-back with a per-class TTL
- Circuit-breaking on upstream calls; no automatic retries

Structure:
- app.main: FastAPI app, routes, and collaborator wiring.
- app.adapters: HTTP client for upstream sources.
- app.caching: Cache keys, TTL policy, Redis store, and the cache gate.
- app.domain: Resource fetcher and the cache-aside pipeline.
"""
