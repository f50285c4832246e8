"""InfoFlow to Markdown vault synchronization engine."""

__version__ = "0.3.0"
