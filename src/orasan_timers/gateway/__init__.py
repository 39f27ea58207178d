"""
Persistence gateways.

- sqlite_gateway.py: local SQLite time_entries store
- http_gateway.py: REST client for the hosted time-tracker API
"""
