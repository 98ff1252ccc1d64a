"""Project metadata shared by the runtime and the packaging configuration."""

from __future__ import annotations

from typing import Mapping

# Read statically by setuptools (see ``[tool.setuptools.dynamic]``).
__version__ = "1.0.0"

PROJECT_METADATA: Mapping[str, object] = {
    "name": "frequent-longs",
    "version": __version__,
    "summary": "Mergeable frequent items sketch for 64-bit integer items with deterministic error bounds",
    "requires_python": ">=3.9",
    "license": "Apache-2.0",
}
