"""Region bounding box annotation tool for conversational image datasets."""

__version__ = "0.1.0"
