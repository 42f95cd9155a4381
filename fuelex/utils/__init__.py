from fuelex.utils.date_hints import date_hint_from_filename, document_date_hint
from fuelex.utils.file_utils import get_content_type, media_kind

__all__ = [
    'date_hint_from_filename',
    'document_date_hint',
    'get_content_type',
    'media_kind',
]
