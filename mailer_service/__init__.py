"""Event notification mailer with delivery tracking."""

__version__ = "0.1.0"
