"""
ID generation utilities for ChronoGraph.

Graph records use plain uuid4 strings so they stay valid identifiers in
every backend.
"""

from uuid import uuid4


def generate_uuid() -> str:
    """
    Generate a node/edge uuid.

    Returns:
        Canonical uuid4 string
    """
    return str(uuid4())
