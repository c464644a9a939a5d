"""mdqa: question answering over a single markdown document."""

__version__ = "0.1.0"
