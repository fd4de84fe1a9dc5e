"""Base classes for format parsers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Generic, TypeVar

import structlog
from pydantic import BaseModel

logger = structlog.get_logger()

T = TypeVar("T", bound=BaseModel)


class FormatParser(ABC, Generic[T]):
    """Base class for format parsers."""

    @abstractmethod
    def parse(self, data: bytes | BinaryIO) -> T:
        """Parse binary data.

        Args:
            data: Binary data or stream

        Returns:
            Parsed format object
        """
        ...

    def parse_file(self, path: str | Path) -> T:
        """Parse format from file.

        Args:
            path: File path

        Returns:
            Parsed format object
        """
        try:
            with open(path, "rb") as f:
                return self.parse(f)
        except OSError as e:
            logger.error("Failed to read file", path=str(path), error=str(e))
            raise ValueError(f"Cannot read file {path}: {e}") from e

    @abstractmethod
    def build(self, obj: T) -> bytes:
        """Build binary data from object.

        Args:
            obj: Format object

        Returns:
            Binary data
        """
        ...
