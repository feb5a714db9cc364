"""
Todo Service package.

A CRUD service for todo items backed by a relational store, with an
optional Redis read-through cache and optional Kafka change events.

Structure:
- app.main: FastAPI app, routes, and component wiring.
- app.models: Request, entity, and event models.
- app.persistence: SQL repository (source of truth).
- app.cache: Redis cache for single todos and the full list.
- app.events: Kafka publisher for change events.
- app.services: Orchestration and operation metrics.
"""
