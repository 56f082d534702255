"""Postprocessing module.

This module provides post-recognition processing:
- TUID extraction and leading-character correction
"""

from postprocessing.identifier_extractor import extract_tuid

__all__ = [
    'extract_tuid'
]
