"""
IO Kernel -- Insertion Order approval and budget core.

Holds the pieces every other package builds on:
- Typed exceptions and structured logging
- Pure domain types for insertion orders, lines and billing references
- SQLAlchemy persistence, read-only selectors and transactional services
"""

__version__ = "0.1.0"
