"""Comic archive (directory, cbz, cbr, pdf) to e-reader EPUB converter."""

__version__ = "1.0.0"
