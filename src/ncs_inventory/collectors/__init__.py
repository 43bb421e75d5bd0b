"""Data-source collectors that emit plain record collections."""
