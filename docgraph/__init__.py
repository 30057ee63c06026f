"""docgraph: document knowledge graphs with cross-reference resolution."""

__version__ = "0.1.0"
