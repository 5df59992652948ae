"""An in-memory Unix-style file system with a redo log, an image builder and small text tools."""

__version__ = "0.1.0"