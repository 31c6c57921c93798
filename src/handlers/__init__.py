"""
Lambda handlers package for the calendar and pregnancy API.
"""
from . import calendar, pregnancy

__all__ = ["calendar", "pregnancy"]
