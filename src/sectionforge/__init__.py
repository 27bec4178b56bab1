"""SectionForge: batch section processing and module packaging."""

__version__ = "0.1.0"
