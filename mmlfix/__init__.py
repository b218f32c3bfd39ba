"""mmlfix: tempo desync repair and length optimizer for multi-track MML."""

__version__ = "0.1.0"
