"""Test package for Redact-Ted.

Core tests drive the round engine, scoring and geometry directly with fake
clocks, loaders and rasters. UI tests run headlessly using pygame's dummy
video driver to avoid opening real windows. To run these tests, execute
``pytest`` from the project root.
"""
