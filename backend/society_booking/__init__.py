"""Amenity and guest-parking booking service for residential societies."""

__version__ = "1.0.0"
