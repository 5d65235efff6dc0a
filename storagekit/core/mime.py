"""
MIME type guessing by file extension.

A fixed table instead of the platform mimetypes database, so every
device reports the same type for the same name on every host.
"""

from pathlib import PurePosixPath

DEFAULT_MIME_TYPE = "application/octet-stream"

MIME_TYPES = {
    # text
    "txt": "text/plain",
    "html": "text/html",
    "htm": "text/html",
    "css": "text/css",
    "csv": "text/csv",
    "xml": "text/xml",
    # scripts and data
    "js": "application/javascript",
    "mjs": "application/javascript",
    "json": "application/json",
    # images
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "webp": "image/webp",
    "ico": "image/x-icon",
    "bmp": "image/bmp",
    "tiff": "image/tiff",
    "tif": "image/tiff",
    # documents
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "ppt": "application/vnd.ms-powerpoint",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    # audio
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "m4a": "audio/mp4",
    # video
    "mp4": "video/mp4",
    "avi": "video/x-msvideo",
    "mov": "video/quicktime",
    "wmv": "video/x-ms-wmv",
    "flv": "video/x-flv",
    "webm": "video/webm",
    # archives
    "zip": "application/zip",
    "rar": "application/x-rar-compressed",
    "tar": "application/x-tar",
    "gz": "application/gzip",
    "7z": "application/x-7z-compressed",
}


def guess_mime_type(path: str) -> str:
    """Return the MIME type for ``path``'s extension, octet-stream if unknown."""
    suffix = PurePosixPath(path.replace("\\", "/")).suffix.lower().lstrip(".")
    return MIME_TYPES.get(suffix, DEFAULT_MIME_TYPE)
