"""api/ -- FastAPI application, HTTP models, and v1 routers."""
