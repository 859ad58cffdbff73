"""
HeatAtlas services: Earth Engine access, raster analytics, report assembly
and artifact storage.
"""
