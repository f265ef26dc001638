"""API router subpackage for the preview backend.

Submodules:
    - preview: Endpoints decoding uploaded vector, tabular and raster files
      into previews.
"""
