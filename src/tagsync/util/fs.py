# src/tagsync/util/fs.py: Filesystem utilities.
# This module provides the atomic file write used for every artifact handed
# back to the calling pipeline, so a crashed run never leaves a truncated
# tag list behind.

import os
from pathlib import Path
from typing import Union


def atomic_write(path: Union[str, Path], content: str):
    """Write content to a file atomically."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(f"{path.name}.tmp")
    with open(temp_path, "w", encoding="utf-8", newline="\n") as f:
        f.write(content)
    os.replace(temp_path, path)
