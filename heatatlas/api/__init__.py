"""HeatAtlas HTTP API."""
