"""Juris AI backend.

Agent and workflow orchestration engine with retrieval-augmented generation
for legal practice management.
"""

from juris import db

__version__ = "0.1.0"

__all__ = [
    "db",
    "__version__",
]
