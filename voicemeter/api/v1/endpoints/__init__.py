"""API v1 endpoint routers."""
