"""Datasette plugin serving the stock-map JSON API."""

from datasette_stock_map.plugin import (
    asgi_wrapper,
    register_routes,
    skip_csrf,
    startup,
)

__all__ = [
    "asgi_wrapper",
    "register_routes",
    "skip_csrf",
    "startup",
]
