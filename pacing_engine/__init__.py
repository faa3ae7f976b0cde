"""
Pacing Engine Package.

Reconciles planned media delivery (budgets and deliverables flighted across
bursts) with actual delivery pulled from the BigQuery warehouse, and classifies
each line item, campaign and client as UNDER, ON or OVER pace.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, clock, errors, warehouse/database clients, cache
    - models: Pydantic schemas and enums
    - services: Schedule normalisation, expected values, delivery gateway,
      classification, roll-ups and the pacing pipeline
    - sql: Parameterised warehouse and plan store queries
"""

__version__ = "1.0.0"
