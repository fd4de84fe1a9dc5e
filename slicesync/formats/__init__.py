"""Format parsers for slicesync blobs."""

from slicesync.formats.base import FormatParser
from slicesync.formats.manifest import InstallStateParser, ManifestParser

__all__ = ["FormatParser", "InstallStateParser", "ManifestParser"]
