"""Content signatures in evaluation priority order.

First match wins, so order matters wherever two signatures overlap:

- longer / more specific patterns come before shorter ones at the same offset
  (``ftypheic``, ``ftypM4A`` and ``ftypqt`` before the generic ``ftyp`` of MP4);
- RIFF containers identified at offset 8 (WEBP, AVI) come before the bare
  ``RIFF`` prefix used for WAV;
- WebM and MKV share the EBML header; WebM is listed first and wins.

All patterns end within the first 64 bytes of a file.
"""

from typing import Dict, Tuple
from ibt.domain.models import ContentSignature

HEADER_BYTES = 64

SIGNATURES: Tuple[ContentSignature, ...] = (
    ContentSignature(name="SQLite", magic=(b"SQLite format 3\x00",), description="SQLite Database",
                     extensions=("db", "sqlite", "sqlitedb")),
    ContentSignature(name="WMV", magic=(b"\x30\x26\xb2\x75\x8e\x66\xcf\x11",), description="Windows Media Video",
                     extensions=("wmv",)),
    ContentSignature(name="PNG", magic=(b"\x89PNG\r\n\x1a\n",), description="PNG Image", extensions=("png",)),
    ContentSignature(name="HEIC", magic=(b"ftypheic", b"ftypheix", b"ftyphevc", b"ftyphevx"), offset=4,
                     description="HEIC Image", extensions=("heic", "heif")),
    ContentSignature(name="M4A", magic=(b"ftypM4A",), offset=4, description="M4A Audio", extensions=("m4a",)),
    ContentSignature(name="MOV", magic=(b"ftypqt",), offset=4, description="QuickTime MOV Video",
                     extensions=("mov",)),
    ContentSignature(name="GIF", magic=(b"GIF87a", b"GIF89a"), description="GIF Image", extensions=("gif",)),
    ContentSignature(name="PLIST", magic=(b"bplist",), description="Binary Property List", extensions=("plist",)),
    ContentSignature(name="XML", magic=(b"<?xml",), description="XML Document", extensions=("xml",)),
    ContentSignature(name="WEBP", magic=(b"WEBP",), offset=8, description="WEBP Image", extensions=("webp",)),
    ContentSignature(name="AVI", magic=(b"AVI ",), offset=8, description="AVI Video", extensions=("avi",)),
    ContentSignature(name="MP4", magic=(b"ftyp",), offset=4, description="MP4 Video", extensions=("mp4", "m4v")),
    ContentSignature(name="PDF", magic=(b"%PDF",), description="Adobe PDF Document", extensions=("pdf",)),
    ContentSignature(name="MPG", magic=(b"\x00\x00\x01\xba", b"\x00\x00\x01\xb3", b"\x00\x00\x01\xb0"),
                     description="MPEG Video", extensions=("mpg", "mpeg")),
    ContentSignature(name="FLV", magic=(b"FLV\x01",), description="Flash Video", extensions=("flv",)),
    ContentSignature(name="WebM", magic=(b"\x1a\x45\xdf\xa3",), description="WebM Video", extensions=("webm",)),
    ContentSignature(name="MKV", magic=(b"\x1a\x45\xdf\xa3",), description="Matroska Video", extensions=("mkv",)),
    ContentSignature(name="ZIP", magic=(b"PK\x03\x04", b"PK\x05\x06", b"PK\x07\x08"), description="ZIP Archive",
                     extensions=("zip",)),
    ContentSignature(name="WAV", magic=(b"RIFF",), description="WAV Audio", extensions=("wav",)),
    ContentSignature(name="JPEG", magic=(b"\xff\xd8\xff",), description="JPEG Image", extensions=("jpg", "jpeg")),
    ContentSignature(name="MP3", magic=(b"ID3", b"\xff\xfb", b"\xff\xf3", b"\xff\xf2"), description="MP3 Audio",
                     extensions=("mp3",)),
    ContentSignature(name="GZIP", magic=(b"\x1f\x8b",), description="GZIP Archive", extensions=("gz",)),
    ContentSignature(name="JSON", magic=(b"{", b"["), description="JSON Data", extensions=("json",)),
)

# Plain-text formats have no magic bytes; only reachable through the extension fallback.
TEXT_EXTENSIONS: Dict[str, Tuple[str, str]] = {
    "txt": ("Text", "Plain Text File"),
    "log": ("Log File", "Log File"),
    "css": ("CSS", "Cascading Style Sheet"),
    "js": ("JavaScript", "JavaScript File"),
    "html": ("HTML", "HTML Document"),
    "md": ("Markdown", "Markdown Document"),
    "csv": ("CSV", "Comma Separated Values"),
}

VIDEO_TYPES = frozenset({"MP4", "MOV", "AVI", "MPG", "WMV", "FLV", "WebM", "MKV"})
