"""HeatAtlas utilities."""
