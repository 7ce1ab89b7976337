"""
Utility functions and helpers for RootsReach.
"""

from .mongo import clean_mongo_doc, to_object_id
from .time import minutes_until, start_of_day, utcnow

__all__ = ["clean_mongo_doc", "to_object_id", "minutes_until", "start_of_day", "utcnow"]
