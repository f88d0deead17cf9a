"""
clinicqueue - appointment slot and booking lifecycle engine for clinics.
"""

__version__ = "0.1.0"
