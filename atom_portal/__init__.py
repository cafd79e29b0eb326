"""ATOM Jiu-Jitsu back-office and member portal API."""

__version__ = "1.0.0"
