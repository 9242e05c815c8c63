"""Resource limit enforcement, usage sampling and violation detection for processes."""

__version__ = "0.1.0"