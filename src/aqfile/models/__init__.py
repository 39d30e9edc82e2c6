from .record import BlobRef, Checksum, FileDescriptor, FileRecord, RecordRef, Session, StoredRecord, rkey_from_uri

__all__ = [
    "BlobRef", "Checksum", "FileDescriptor", "FileRecord",
    "RecordRef", "Session", "StoredRecord", "rkey_from_uri",
]
