"""Core type definitions for slicesync."""

from __future__ import annotations

from collections.abc import Iterator
from enum import StrEnum
from pathlib import Path, PurePosixPath

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator


class CompressionMethod(StrEnum):
    """Codec applied to every slice payload a manifest references."""
    NONE = "none"
    DEFLATE = "deflate"
    LZHAM = "lzham"
    ZSTD = "zstd"


class ChunkType(StrEnum):
    """Chunk classification."""
    REQUIRED = "required"
    OPTIONAL = "optional"


class Slice(BaseModel):
    """Content-addressed byte range of a file."""

    size: int = Field(..., ge=0, description="Uncompressed size in bytes")
    hash: bytes = Field(..., description="SHA-1 of the uncompressed slice")

    @field_validator("hash", mode="before")
    @classmethod
    def parse_hash(cls, v: bytes | str) -> bytes:
        """Accept hex strings as well as raw digests."""
        if isinstance(v, str):
            return bytes.fromhex(v)
        return v

    @field_serializer("hash")
    def serialize_hash(self, v: bytes) -> str:
        return v.hex().upper()


class SliceRange(BaseModel):
    """A slice placed at its byte offset within a file."""

    index: int
    offset: int
    size: int
    hash: bytes

    @property
    def end(self) -> int:
        return self.offset + self.size


class ManifestFile(BaseModel):
    """A file of the installation and its ordered slices."""

    name: str = Field(..., description="Path relative to the install root")
    size: int = Field(..., ge=0, description="Total size in bytes")
    slices: list[Slice] = Field(default_factory=list, description="Ordered slices")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Reject names that would land outside the install root."""
        path = PurePosixPath(v.replace("\\", "/"))
        if not v or path.is_absolute() or ".." in path.parts:
            raise ValueError(f"Invalid file name: {v!r}")
        return v

    @model_validator(mode="after")
    def validate_slice_sizes(self) -> ManifestFile:
        total = sum(s.size for s in self.slices)
        if total != self.size:
            raise ValueError(
                f"Slice sizes of {self.name} sum to {total}, expected {self.size}"
            )
        return self

    def local_path(self, root: Path) -> Path:
        """Location of this file under an install root."""
        return root.joinpath(*PurePosixPath(self.name.replace("\\", "/")).parts)

    def slice_hashes(self) -> list[bytes]:
        """Ordered slice digests."""
        return [s.hash for s in self.slices]

    def slice_layout(self) -> list[SliceRange]:
        """Place each slice at the running sum of the sizes before it.

        Offsets come from the declared (uncompressed) slice sizes, never
        from transfer sizes.
        """
        ranges: list[SliceRange] = []
        offset = 0
        for index, s in enumerate(self.slices):
            ranges.append(SliceRange(index=index, offset=offset, size=s.size, hash=s.hash))
            offset += s.size
        return ranges


class Chunk(BaseModel):
    """Named group of files within a manifest."""

    id: int = Field(..., description="Chunk identifier")
    type: ChunkType = Field(default=ChunkType.REQUIRED, description="Chunk type tag")
    files: list[ManifestFile] = Field(default_factory=list, description="Ordered files")

    def find_file(self, name: str) -> ManifestFile | None:
        for f in self.files:
            if f.name == name:
                return f
        return None


class Manifest(BaseModel):
    """Structured description of an installation's content layout."""

    compression_method: CompressionMethod = Field(
        default=CompressionMethod.NONE,
        description="Codec applied to all slice payloads"
    )
    chunks: list[Chunk] = Field(default_factory=list, description="Ordered chunks")

    def iter_files(self) -> Iterator[tuple[Chunk, ManifestFile]]:
        """Yield (chunk, file) pairs, chunks first then files, in order."""
        for chunk in self.chunks:
            for f in chunk.files:
                yield chunk, f

    def find_chunk(self, chunk_id: int) -> Chunk | None:
        for chunk in self.chunks:
            if chunk.id == chunk_id:
                return chunk
        return None

    def find_file(self, chunk_id: int, name: str) -> ManifestFile | None:
        chunk = self.find_chunk(chunk_id)
        if chunk is None:
            return None
        return chunk.find_file(name)

    @property
    def file_count(self) -> int:
        return sum(len(chunk.files) for chunk in self.chunks)

    @property
    def total_size(self) -> int:
        return sum(f.size for _, f in self.iter_files())


class InstallState(BaseModel):
    """Record of what is currently installed in an install root."""

    product_id: int = Field(..., description="Product identifier")
    install_path: Path = Field(..., description="Resolved install root")
    manifest_hash: str = Field(..., description="Hash of the installed manifest")

    model_config = ConfigDict(extra="allow")


class ManifestVersion(BaseModel):
    """Human-readable metadata for a known manifest of a product."""

    product_id: int = Field(..., alias="productId")
    manifest: str = Field(..., description="Manifest hash")
    release_date: str | None = Field(None, alias="releaseDate")
    digital_distribution_version: int | None = Field(None, alias="digitalDistributionVersion")
    community_semver: str | None = Field(None, alias="communitySemver")
    community_description: str | None = Field(None, alias="communityDescription")

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def display_name(self) -> str:
        """Format as 'date - semver - description (manifest)'."""
        parts = [
            self.release_date[:10] if self.release_date else None,
            self.community_semver,
            self.community_description,
        ]
        label = " - ".join(p for p in parts if p)
        return f"{label} ({self.manifest})" if label else self.manifest
