"""
Cleaner module.
Contains the periodic cleaner removing finished jobs.
"""

from docqueue.cleaner.main import Cleaner, run_cleaner

__all__ = ["Cleaner", "run_cleaner"]
