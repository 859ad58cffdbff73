"""HeatAtlas - urban heat island analytics and report service."""

__version__ = "0.1.0"
