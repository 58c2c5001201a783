"""QuickDrop: ephemeral, optionally-encrypted image sharing on top of Cloudflare R2."""

__version__ = "0.1.0"
