"""
stackrestore - Bootstrap the poktpool stack and restore its PostgreSQL dumps
"""

__version__ = "0.1.0"

from .core import RestoreError, StackRestorer

__all__ = ["StackRestorer", "RestoreError"]
