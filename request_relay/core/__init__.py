"""
Core Module

Cross-cutting building blocks shared by every component:

- **config/**: settings and constants
- **logging/**: structured logging
- **exceptions/**: exception hierarchy
- **interfaces/**: abstract seams (bus, job store, request store)
"""
