"""API routers: system, layers and merged queries."""
