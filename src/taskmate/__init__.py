"""taskmate: a chat assistant that keeps a dependency-aware task graph for its users."""

__version__ = "0.1.0"
