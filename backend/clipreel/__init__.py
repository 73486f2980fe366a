"""
clipreel: asynchronous clip-compilation pipeline.

Merges an ordered list of short clips owned by a user into one video at a
chosen aspect-ratio and quality preset, and keeps a durable history of
finished compilations.
"""

__version__ = "0.1.0"
