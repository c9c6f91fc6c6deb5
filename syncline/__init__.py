"""
Syncline - Scheduled API-to-destination sync runner

Pages through rate-limited HTTP APIs and delivers normalized record batches to
pluggable destinations, orchestrated per connection by Temporal.
"""

__version__ = "0.1.0"
