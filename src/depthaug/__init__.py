"""
depthaug
--------

Batch augmentation of rendered depth/label training frames: frame
deduplication, sensor-like depth noise, left/right mirroring and an
idempotent, resumable output writer.
"""

__version__ = "0.1.0"
