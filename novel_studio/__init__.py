"""Novel Studio: turns novels into illustrated, translated and animated books."""

__version__ = "1.0.0"
