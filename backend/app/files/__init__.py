"""File storage module for livechat uploads.

Files are written through a named store (``Uploads``) onto the configured
backend, either the local file system or an Amazon S3 bucket, and their
metadata is tracked in DuckDB.

Upload policy (enabled switch, maximum size, media type white/black lists)
comes from the ``file_upload`` settings section.
"""
