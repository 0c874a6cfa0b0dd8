"""Clinic GYM: diagnosis-and-treatment simulation for a returning patient."""

__version__ = "0.1.0"
