"""Guardian API routers."""
