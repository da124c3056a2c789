"""depcheck: identify bundled third-party components and their known vulnerabilities."""

__version__ = "0.4.0"

__all__ = ["__version__"]
