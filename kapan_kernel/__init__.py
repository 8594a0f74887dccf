"""
Kapan Kernel - lot and packet tracking core

Shared foundation for the stage workflows:
- Typed, coded exceptions carried inside Outcome values
- Structured JSON logging with context propagation
- Immutable domain records and parsed identifiers
- Whole-collection key-value persistence (memory, SQL, mirrored)
"""

__version__ = "0.1.0"
