"""Errors raised by the media library services."""

from common.exceptions import ServiceError


class LibraryError(ServiceError):
    code = "library_error"


class MetadataExtractionError(LibraryError):
    code = "metadata_extraction_failed"


class OrganizeError(LibraryError):
    """Directory creation or file move failed while organizing."""

    code = "organize_failed"
