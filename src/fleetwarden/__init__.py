"""Fleet health reconciliation and work queue coordination for agent towns."""

__version__ = "0.1.0"

__all__ = ["__version__"]
