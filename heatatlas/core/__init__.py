"""Pure numeric, geometry and chart helpers."""
