"""Media type detection and storage key naming for cached assets.

- Content-Type header normalisation
- Magic byte detection when the server sends no useful header
- File extension lookup
- Storage key generation (folder / timestamp-random.ext)
"""
import secrets
import time
from urllib.parse import urlparse


GENERIC_CONTENT_TYPES = {"", "application/octet-stream", "binary/octet-stream"}

EXTENSION_MAP: dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/heic": ".heic",
    "video/mp4": ".mp4",
    "video/webm": ".webm",
    "video/quicktime": ".mov",
    "audio/mpeg": ".mp3",
    "audio/mp4": ".m4a",
    "audio/wav": ".wav",
    "audio/webm": ".weba",
}

# Magic byte signatures for media type detection
MAGIC_SIGNATURES: dict[str, list[tuple[bytes, int]]] = {
    "image/jpeg": [(b"\xff\xd8\xff", 0)],
    "image/png": [(b"\x89PNG\r\n\x1a\n", 0)],
    "image/gif": [(b"GIF87a", 0), (b"GIF89a", 0)],
    "image/webp": [(b"RIFF", 0)],  # RIFF....WEBP
    "audio/wav": [(b"RIFF", 0)],  # RIFF....WAVE
    "audio/mpeg": [(b"ID3", 0), (b"\xff\xfb", 0), (b"\xff\xf3", 0)],
    "video/webm": [(b"\x1a\x45\xdf\xa3", 0)],
    "video/mp4": [(b"ftyp", 4)],  # ....ftyp
}

# ISO base media brands that are audio-only
_AUDIO_BRANDS = {b"M4A ", b"M4B "}
_HEIC_BRANDS = {b"heic", b"heix", b"mif1", b"msf1"}


def normalize_content_type(header: str | None) -> str:
    """Lowercase and strip parameters: 'Video/MP4; codecs=x' -> 'video/mp4'."""
    if not header:
        return ""
    return header.split(";")[0].strip().lower()


def detect_mime_by_magic(file_bytes: bytes) -> str | None:
    """Detect MIME type by examining magic bytes."""
    if len(file_bytes) < 12:
        return None

    for mime, signatures in MAGIC_SIGNATURES.items():
        for magic_bytes, offset in signatures:
            end = offset + len(magic_bytes)
            if file_bytes[offset:end] != magic_bytes:
                continue
            # Ambiguous RIFF / ftyp containers need the sub-type
            if mime == "image/webp":
                if file_bytes[8:12] == b"WEBP":
                    return mime
                continue
            if mime == "audio/wav":
                if file_bytes[8:12] == b"WAVE":
                    return mime
                continue
            if mime == "video/mp4":
                brand = file_bytes[8:12]
                if brand in _AUDIO_BRANDS:
                    return "audio/mp4"
                if brand in _HEIC_BRANDS:
                    return "image/heic"
            return mime

    return None


def resolve_content_type(header: str | None, file_bytes: bytes) -> str:
    """Prefer the server's Content-Type; sniff the bytes when it is generic."""
    content_type = normalize_content_type(header)
    if content_type in GENERIC_CONTENT_TYPES:
        detected = detect_mime_by_magic(file_bytes)
        if detected:
            return detected
        return "application/octet-stream"
    return content_type


def extension_for(content_type: str, url: str | None = None) -> str:
    """File extension for a content type, falling back to the URL path."""
    ext = EXTENSION_MAP.get(normalize_content_type(content_type))
    if ext:
        return ext
    if url:
        name = urlparse(url).path.rsplit("/", 1)[-1]
        if "." in name:
            suffix = name.rsplit(".", 1)[-1].lower()
            if suffix.isalnum() and len(suffix) <= 5:
                return f".{suffix}"
    return ".bin"


def generate_storage_key(folder: str, extension: str, prefix: str = "") -> str:
    """Generate a unique object key: ``[prefix/]folder/<ms>-<random><ext>``."""
    name = f"{int(time.time() * 1000)}-{secrets.token_hex(6)}{extension}"
    parts = [p.strip("/") for p in (prefix, folder) if p and p.strip("/")]
    return "/".join([*parts, name])
