"""
Sonopin

Version control for audio projects: snapshots a directory of audio files into
immutable, numbered pins stored as gzip'd tar archives, syncs them with an
HTTP sync server and diffs/patches audio at the sample level.

Package Structure:
- store/: Local object store (version counter, refs, snapshots, archives, pins)
- audio/: Sample-level diff and patch codec
- sync/: HTTP client, Flask sync server and object store
- shared/: Shared models, constants, errors and configuration
- cli.py: Click command-line interface
"""

__version__ = "0.1.0"
