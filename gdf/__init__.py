"""gdf — declarative dotfile and environment manager."""

__version__ = "0.1.0"
