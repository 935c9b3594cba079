"""
Trolley grouped shopping list engine.

The package holds the row model and grouped list state, the swipe delete and
bulk delete flows, the auto delete policy, and the storage, HTTP and CLI
surfaces built on top of them.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
