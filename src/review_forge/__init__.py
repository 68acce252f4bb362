"""Review Forge - automated pull request review with a learning loop."""

__version__ = "0.1.0"
