"""Geo Preview backend: decode geospatial files for in-browser preview.

This package turns uploaded geospatial content into something a map client
can draw without a GIS stack of its own. Vector sources (GeoParquet, GeoJSON)
become GeoJSON FeatureCollections with their bounds; plain Parquet becomes an
attribute table; GeoTIFF/COG rasters become RGBA images with draping corners,
or elevation-colored images for single-band DEMs.

- WKB/EWKB geometries are decoded in pure Python with a nesting cap
- Raster reads pick the overview level that fits the working resolution
- Every preview runs in its own cancellable session; nothing is cached
- Undecodable rows and uncomposed bands are reported, never hidden

See the module docstrings under services/ for the individual decoders.
"""
