"""Domain types for the preview core.

This package holds the data model shared by the vector and raster paths
(geometries, features, raster bands, bounding boxes, preview metadata) and
the error taxonomy raised by the decoders.

Example:
    Import the models and errors where they are needed:
        >>> from geopreview.domain import errors, models
"""
