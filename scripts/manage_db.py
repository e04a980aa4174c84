#!/usr/bin/env python3
"""
Maintenance commands for the fingerprint and song collections.

Usage:
    # Inspect a WAV container
    python scripts/manage_db.py info song.wav

    # Resample to 11025 Hz mono 16-bit PCM with ffmpeg
    python scripts/manage_db.py convert input.mp3 output.wav --rate 11025 --mono

    # Songs
    python scripts/manage_db.py register "Title" "Artist" dQw4w9WgXcQ
    python scripts/manage_db.py song --ref dQw4w9WgXcQ
    python scripts/manage_db.py delete-song 123456
    python scripts/manage_db.py count

    # Bulk-load fingerprints from {"<address>": [[anchorTimeMs, songID], ...]}
    python scripts/manage_db.py import-fingerprints fingerprints.json

    # Drop collections
    python scripts/manage_db.py reset --fingerprints --songs

Connection settings come from DB_USER, DB_PASS, DB_NAME, DB_HOST and DB_PORT.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from songstore import DocumentStore, FingerprintIndex, SongRegistry, StoreConfig
from songstore.convert import convert_audio
from songstore.errors import SongStoreError
from songstore.log import setup_logging
from songstore.models import make_identity_key
from songstore.wav import read_wav_file

log = logging.getLogger("songstore.cli")


def cmd_info(args, store=None):
    container = read_wav_file(args.path)
    print(f"File:            {args.path}")
    print(f"Channels:        {container.channels}")
    print(f"Sample rate:     {container.sample_rate} Hz")
    print(f"Bits per sample: {container.bits_per_sample}")
    print(f"Payload:         {len(container.data)} bytes")
    print(f"Duration:        {container.duration:.3f} s")
    return 0


def cmd_convert(args, store=None):
    out = convert_audio(args.input, args.output, args.rate, to_mono=args.mono, ffmpeg=args.ffmpeg)
    print(f"✓ Wrote {out}")
    return 0


def cmd_count(args, store):
    print(SongRegistry(store).count())
    return 0


def cmd_register(args, store):
    song_id = SongRegistry(store).register(args.title, args.artist, args.ref)
    print(song_id)
    return 0


def cmd_song(args, store):
    registry = SongRegistry(store)
    if args.id is not None:
        song = registry.get_by_id(args.id)
    elif args.ref is not None:
        song = registry.get_by_external_ref(args.ref)
    else:
        title, artist = args.key
        song = registry.get_by_identity_key(make_identity_key(title, artist))

    if song is None:
        print("Not found")
        return 1
    print(f"{song.song_id}\t{song.title}\t{song.artist}\t{song.external_ref}")
    return 0


def cmd_delete_song(args, store):
    removed = SongRegistry(store).delete_by_id(args.song_id)
    print("Deleted" if removed else "Nothing to delete")
    return 0


def cmd_import_fingerprints(args, store):
    with open(args.path, "r", encoding="utf-8") as f:
        raw = json.load(f)

    try:
        fingerprints = {int(address): [tuple(c) for c in couples] for address, couples in raw.items()}
    except (AttributeError, TypeError, ValueError) as e:
        raise ValueError(f"invalid fingerprint file {args.path}: {e}") from e

    written = FingerprintIndex(store).store_fingerprints(fingerprints, progress=True)
    print(f"✓ Stored {written} couples for {len(fingerprints)} addresses")
    return 0


def cmd_reset(args, store):
    if not (args.fingerprints or args.songs):
        print("Error: pass --fingerprints and/or --songs")
        return 2
    if args.fingerprints:
        FingerprintIndex(store).drop_all()
    if args.songs:
        SongRegistry(store).drop_all()
    print("✓ Reset done")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Manage the song recognition database')
    parser.add_argument('--verbose', '-v', action='store_true')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('info', help='Show WAV container details')
    p.add_argument('path', type=Path)
    p.set_defaults(func=cmd_info, needs_store=False)

    p = sub.add_parser('convert', help='Resample audio with ffmpeg')
    p.add_argument('input', type=Path)
    p.add_argument('output', type=Path)
    p.add_argument('--rate', '-r', type=int, default=44100)
    p.add_argument('--mono', action='store_true', help='Downmix to mono 16-bit PCM')
    p.add_argument('--ffmpeg', type=str, default='ffmpeg')
    p.set_defaults(func=cmd_convert, needs_store=False)

    p = sub.add_parser('count', help='Number of registered songs')
    p.set_defaults(func=cmd_count, needs_store=True)

    p = sub.add_parser('register', help='Register a song')
    p.add_argument('title')
    p.add_argument('artist')
    p.add_argument('ref', help='External reference, e.g. a YouTube id')
    p.set_defaults(func=cmd_register, needs_store=True)

    p = sub.add_parser('song', help='Look up a song')
    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument('--id', type=int)
    group.add_argument('--ref', type=str)
    group.add_argument('--key', nargs=2, metavar=('TITLE', 'ARTIST'))
    p.set_defaults(func=cmd_song, needs_store=True)

    p = sub.add_parser('delete-song', help='Delete a song by id')
    p.add_argument('song_id', type=int)
    p.set_defaults(func=cmd_delete_song, needs_store=True)

    p = sub.add_parser('import-fingerprints', help='Load fingerprints from a JSON file')
    p.add_argument('path', type=Path)
    p.set_defaults(func=cmd_import_fingerprints, needs_store=True)

    p = sub.add_parser('reset', help='Drop collections')
    p.add_argument('--fingerprints', action='store_true')
    p.add_argument('--songs', action='store_true')
    p.set_defaults(func=cmd_reset, needs_store=True)

    return parser


def main(argv=None, store=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        if not args.needs_store:
            return args.func(args)
        if store is not None:
            return args.func(args, store)
        with DocumentStore(StoreConfig.from_env()) as db:
            return args.func(args, db)
    except (SongStoreError, OSError, ValueError) as e:
        log.error(str(e))
        return 1


if __name__ == '__main__':
    sys.exit(main())
