from .files import METADATA_FILENAME, FileStore, LocalFileStore

__all__ = ["METADATA_FILENAME", "FileStore", "LocalFileStore"]
