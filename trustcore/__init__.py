"""Platform trust scoring core.

This package contains the building blocks of the trust pipeline:

- sources: adapters for external signal sources (live HTTP, fixtures)
- signals: payload schemas, signal cache and the concurrent collector
- scoring: metric engine, weights and composite scorer
- storage: immutable snapshot persistence (in-memory, SQL)
- events: in-process event bus
- rollup: latest-score cache, board view and update fan-out
- pipeline: scoring cycles and the periodic scheduler
- notifications, health: operator alerts and health checks
"""
