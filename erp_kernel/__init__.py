"""
ERP Kernel

Shared infrastructure for the university ERP research core:
- SQLAlchemy declarative base, engine and transactional session scope
- Structured JSON logging
- Typed exception hierarchy with stable error codes
- Injectable clock and workflow value objects
- Append-only enforcement for history tables
"""

__version__ = "0.1.0"
