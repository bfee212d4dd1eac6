"""KeyGate — per-identity API credentials gating a resource endpoint."""

__version__ = "1.0.0"
