"""
Discovery and ingestion pipeline for Portuguese energy-efficiency support programs.
"""

__version__ = "0.1.0"
