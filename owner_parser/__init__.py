"""
Unknown Owner Parser — structured records from cadastral "unknown owner" names.

Architecture: Segmentation → Dual extraction (Advanced + Legacy) → Conflict scoring → Tag reconciliation
Philosophy:  Every value carries its confidence and the text that produced it.
"""

__version__ = "1.0.0"
