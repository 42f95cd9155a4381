import mimetypes
from pathlib import Path
from typing import Optional, Set, Union

CONTENT_TYPE_MAP = {
    '.txt': 'text/plain',
    '.csv': 'text/csv',
    '.tsv': 'text/tab-separated-values',
    '.md': 'text/markdown',
    '.html': 'text/html',
    '.htm': 'text/html',
    '.json': 'application/json',
    '.xml': 'application/xml',
    '.pdf': 'application/pdf',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
    '.bmp': 'image/bmp',
    '.tif': 'image/tiff',
    '.tiff': 'image/tiff',
}

# Textual types that do not live under text/*
TEXTUAL_APPLICATION_TYPES: Set[str] = {
    'application/json',
    'application/xml',
    'application/csv',
}

MEDIA_IMAGE = 'image'
MEDIA_PDF = 'pdf'
MEDIA_TEXT = 'text'


def get_content_type(file_path: Union[str, Path]) -> str:
    path = Path(file_path)
    ext = path.suffix.lower()
    if ext in CONTENT_TYPE_MAP:
        return CONTENT_TYPE_MAP[ext]
    mime_type, _ = mimetypes.guess_type(path.as_posix())
    return mime_type or 'application/octet-stream'


def base_media_type(media_type: Optional[str]) -> str:
    """Strip parameters such as '; charset=utf-8' and lowercase"""
    if not media_type:
        return ''
    return media_type.split(';', 1)[0].strip().lower()


def media_kind(media_type: Optional[str]) -> Optional[str]:
    """Classify a media type as image, pdf or text; None when unsupported"""
    base = base_media_type(media_type)
    if base.startswith('image/') and base != 'image/svg+xml':
        return MEDIA_IMAGE
    if base == 'application/pdf':
        return MEDIA_PDF
    if base.startswith('text/') or base in TEXTUAL_APPLICATION_TYPES:
        return MEDIA_TEXT
    return None
