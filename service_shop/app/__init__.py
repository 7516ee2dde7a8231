"""
Shop Service package for the Shop Cache Access Layer.

Serves shop lookups through a Redis cache in front of PostgreSQL, defending
the database against cache penetration and hot-key stampedes.

Structure:
- app.main: FastAPI app, routes, and lifecycle wiring.
- app.caching: Cache client, distributed lock, rebuild scheduler, store.
- app.shops: Shop models and the cached query service.
- app.persistence: PostgreSQL repository (source of truth).
"""
