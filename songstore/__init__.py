"""
songstore - fingerprint persistence and WAV I/O for song recognition.

Three pieces:
1. FingerprintIndex: address -> (anchor time, song id) couples, append-only
2. SongRegistry: song catalog with unique (external ref, title + artist) identity
3. wav: 16-bit PCM RIFF/WAVE encode/decode and sample conversion
"""

import logging

from .config import StoreConfig
from .db import DocumentStore
from .fingerprints import FingerprintIndex
from .models import Couple, Song
from .songs import SongField, SongRegistry
from .wav import AudioContainer

logging.getLogger("songstore").addHandler(logging.NullHandler())

__all__ = [
    'AudioContainer',
    'Couple',
    'DocumentStore',
    'FingerprintIndex',
    'Song',
    'SongField',
    'SongRegistry',
    'StoreConfig',
]
