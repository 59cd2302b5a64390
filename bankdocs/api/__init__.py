"""HTTP API: routes, schemas and middleware."""

from bankdocs.api.routes import router

__all__ = ["router"]
