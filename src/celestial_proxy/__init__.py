"""Moon and tarot data proxy with tiered caching."""

__version__ = "0.1.0"
