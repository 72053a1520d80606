"""nanolink: nanopublication import, search and linking for a local library."""

__version__ = "0.1.0"
