# src/tagsync/action.py: Results handed back to the calling pipeline.
# This module writes the tag and branch lists shared between the detect and
# sync stages, and publishes step outputs the way GitHub Actions reads them.
# Lists are stored one name per line: git forbids control characters in ref
# names, so a newline can never appear inside a legal tag.

import os
import sys
import uuid
from pathlib import Path
from typing import Iterable, List, Mapping, Optional

from .errors import ConfigError
from .util.fs import atomic_write
from .util.log import get_logger

logger = get_logger(__name__)


def write_tag_list(path: Path, names: Iterable[str]) -> None:
    """Atomically writes `names`, one per line."""
    names = list(names)
    for name in names:
        if "\n" in name or "\r" in name:
            raise ConfigError(f"Name {name!r} contains a line break and cannot be written to {path}.")
    content = "".join(f"{name}\n" for name in names)
    atomic_write(path, content)
    logger.debug(f"Wrote {len(names)} name(s) to {path}")


def read_tag_list(path: Path) -> List[str]:
    """Reads a list written by write_tag_list, ignoring blank lines."""
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read tag list '{path}': {e}") from e
    return [line.strip() for line in content.splitlines() if line.strip()]


def write_output(key: str, value: str, environ: Optional[Mapping[str, str]] = None) -> None:
    """
    Publishes a step output.

    Appends to the file named by GITHUB_OUTPUT when it is set, using the
    delimiter form for multi-line values. Otherwise falls back to the legacy
    '::set-output' workflow command on stdout.
    """
    if environ is None:
        environ = os.environ
    output_file = environ.get("GITHUB_OUTPUT")

    if not output_file:
        print(f"::set-output name={key}::{value}", file=sys.stdout)
        return

    with open(output_file, "a", encoding="utf-8") as f:
        if "\n" in value:
            delimiter = f"ghadelimiter_{uuid.uuid4()}"
            f.write(f"{key}<<{delimiter}\n{value}\n{delimiter}\n")
        else:
            f.write(f"{key}={value}\n")
