"""Revenue sharing and disbursement engine."""

__version__ = "1.0.0"
