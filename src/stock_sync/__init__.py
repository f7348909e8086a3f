"""
stock-sync: Store inventory lookups backed by a Google Sheets document.

Caches spreadsheet reads, aggregates inventory rows per store, resolves login
identifiers, and keeps store coordinates in step with their addresses via a
geocoder.
"""

__version__ = "0.1.0"
