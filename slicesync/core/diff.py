"""Manifest diffing for incremental installs.

A target file is re-downloaded in full when its chunk or name is unknown
to the previous manifest, or when its ordered slice hashes differ from
the previous entry in any position or in length. Individual slices are
never patched into an existing file.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from slicesync.core.types import Manifest, ManifestFile

logger = structlog.get_logger()


@dataclass
class ManifestDiff:
    """Result of comparing a target manifest against a previous one."""

    selected: list[ManifestFile] = field(default_factory=lambda: list[ManifestFile]())
    obsolete: list[str] = field(default_factory=lambda: list[str]())
    unchanged_count: int = 0
    new_count: int = 0
    changed_count: int = 0

    @property
    def download_size(self) -> int:
        return sum(f.size for f in self.selected)


def diff_manifests(target: Manifest, previous: Manifest | None = None) -> ManifestDiff:
    """Classify every file of the target manifest against the previous one.

    Args:
        target: Manifest to install
        previous: Manifest currently installed, None for a fresh install

    Returns:
        ManifestDiff with the files to download in chunk-then-file order
    """
    delta = ManifestDiff()

    if previous is None:
        delta.selected = [f for _, f in target.iter_files()]
        delta.new_count = len(delta.selected)
        logger.debug("fresh_install_diff", files=delta.new_count)
        return delta

    for chunk, target_file in target.iter_files():
        current = previous.find_file(chunk.id, target_file.name)
        if current is None:
            delta.selected.append(target_file)
            delta.new_count += 1
        elif current.slice_hashes() != target_file.slice_hashes():
            delta.selected.append(target_file)
            delta.changed_count += 1
        else:
            delta.unchanged_count += 1

    for chunk, old_file in previous.iter_files():
        if target.find_file(chunk.id, old_file.name) is None:
            delta.obsolete.append(old_file.name)

    logger.info(
        "Manifest diff computed",
        unchanged=delta.unchanged_count,
        new=delta.new_count,
        changed=delta.changed_count,
        obsolete=len(delta.obsolete),
    )
    return delta

