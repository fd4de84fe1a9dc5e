"""CLI command implementations for slicesync.

- download: Download or update an install to a target manifest
- verify: Verify installed files against the installed manifest
- diff: Compare two local manifest files
- versions: List known manifests of a product
- cache: Manage the manifest cache
"""

from slicesync.commands.cache import cache_group
from slicesync.commands.diff import diff
from slicesync.commands.download import download
from slicesync.commands.verify import verify
from slicesync.commands.versions import versions

__all__ = ["cache_group", "diff", "download", "verify", "versions"]
