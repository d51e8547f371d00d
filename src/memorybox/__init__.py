"""
Memorybox: personal media gallery with AI-assisted captions and journals.

This package provides uploading of photos and videos, perceptual-hash based
duplicate detection, vision-model caption and category suggestions, and
per-item journal entries.
"""

__version__ = "0.1.0"
