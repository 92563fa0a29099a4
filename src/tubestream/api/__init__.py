"""API module: the FastAPI app, routes and schemas."""
