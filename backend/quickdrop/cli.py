#!/usr/bin/env python3
"""
Command-line entry point.

Usage:
    # Upload a screenshot, optionally encrypted, and print the link
    quickdrop upload shot.png --expiry-hours 1
    quickdrop upload shot.png --password hunter2

    # Decrypt a downloaded .enc blob
    quickdrop decrypt abc123.enc --password hunter2 -o abc123.png

    # Run the expiry collector once (what the daily beat task does)
    quickdrop cleanup --dry-run

R2 settings come from the environment (R2_ENDPOINT, R2_ACCESS_KEY,
R2_SECRET_KEY, R2_BUCKET, PUBLIC_BASE_URL).
"""
import argparse
import mimetypes
import sys
from pathlib import Path

from quickdrop.config import settings
from quickdrop.core import crypto
from quickdrop.exceptions import DecryptionError, QuickDropError, UpstreamError
from quickdrop.services.cleanup import CleanupAborted, ExpiryCollector
from quickdrop.services.uploader import Uploader
from quickdrop.storage import build_object_store
from quickdrop.utils.logging import configure_logging


def cmd_upload(args) -> int:
    path = Path(args.file)
    payload = path.read_bytes()
    content_type = args.content_type or mimetypes.guess_type(path.name)[0] or "application/octet-stream"

    uploader = Uploader.from_settings(settings)
    try:
        result = uploader.upload(
            payload,
            content_type=content_type,
            filename=path.name,
            password=args.password,
            expiry_hours=args.expiry_hours,
            title=args.title,
        )
    except UpstreamError as e:
        print(f"ERROR: {e} (status: {e.status_code})", file=sys.stderr)
        return 1
    finally:
        uploader.close()

    print(result.link)
    return 0


def cmd_decrypt(args) -> int:
    blob = Path(args.file).read_bytes()
    try:
        plaintext = crypto.decrypt(blob, args.password)
    except DecryptionError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    output = Path(args.output) if args.output else Path(args.file).with_suffix(".png")
    output.write_bytes(plaintext)
    print(f"Decrypted {len(plaintext)} bytes to {output}")
    return 0


def cmd_cleanup(args) -> int:
    collector = ExpiryCollector.from_settings(build_object_store(settings), settings)
    try:
        result = collector.run(dry_run=args.dry_run)
    except CleanupAborted as e:
        print(f"ERROR: {e}", file=sys.stderr)
        print(f"  Scanned: {e.result.scanned}, Deleted: {e.result.deleted}", file=sys.stderr)
        return 1

    verb = "Would delete" if result.dry_run else "Deleted"
    print(f"{'=' * 50}")
    print("SUMMARY:")
    print(f"  Scanned: {result.scanned}")
    print(f"  {verb}: {result.deleted}")
    print(f"  Failed: {result.failed}")
    print(f"{'=' * 50}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="quickdrop", description="Ephemeral image links on Cloudflare R2")
    subparsers = parser.add_subparsers(dest="command", required=True)

    upload = subparsers.add_parser("upload", help="Upload a file and print its link")
    upload.add_argument("file")
    upload.add_argument("--password", "-p", help="Encrypt client-side with this password")
    upload.add_argument("--expiry-hours", type=float, default=None,
                        help=f"Hours until the link expires (default: {settings.default_ttl_hours})")
    upload.add_argument("--content-type", help="MIME type (guessed from the filename by default)")
    upload.add_argument("--title", help="Caption shown on the viewer page")
    upload.set_defaults(func=cmd_upload)

    decrypt = subparsers.add_parser("decrypt", help="Decrypt a downloaded .enc file")
    decrypt.add_argument("file")
    decrypt.add_argument("--password", "-p", required=True)
    decrypt.add_argument("--output", "-o")
    decrypt.set_defaults(func=cmd_decrypt)

    cleanup = subparsers.add_parser("cleanup", help="Delete expired objects once")
    cleanup.add_argument("--dry-run", action="store_true", help="Report without deleting")
    cleanup.set_defaults(func=cmd_cleanup)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging('quickdrop-cli', settings.log_level, stream=sys.stderr)

    try:
        return args.func(args)
    except (QuickDropError, ValueError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
