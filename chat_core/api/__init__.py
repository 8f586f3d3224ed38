"""HTTP transport (FastAPI).

- service: wiring of the chat services and their collaborators.
- deps: caller identity and rate-limit dependencies.
- errors: BusinessError -> structured JSON error body.
- routes: /api/v1 endpoints.
- app: application factory.
"""
