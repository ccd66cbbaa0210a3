"""
Stepline Kernel - shared infrastructure for the batch engine.

Provides:
- Structured JSON logging with context propagation
- Typed exception hierarchy with machine-readable codes
- Injectable clock
- SQLAlchemy declarative base and engine/session management
"""

__version__ = "0.1.0"
