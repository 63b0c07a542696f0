"""Core module - session pooling, configuration and observability.

This module is transport-agnostic: nothing here knows about HTTP or about
specific Sage 100 business objects.

Driver implementations (COM, in-memory) belong in /connectors/.
"""

__version__ = "1.0.0"
