"""
Decide whether an executable is a Node.js package entry or a native binary.

Inside the dlx directory the slot layout answers the question: package
slots have ``node_modules/``, binary slots do not. Elsewhere the nearest
package.json with a ``bin`` field, then the file extension, decide.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from dlxkit.core.filesystem import normalize_path
from dlxkit.dlx.paths import NODE_MODULES, PACKAGE_JSON, is_in_dlx

logger = logging.getLogger(__name__)

NODE_JS_EXTENSIONS = (".js", ".mjs", ".cjs")

TYPE_PACKAGE = "package"
TYPE_BINARY = "binary"

METHOD_DLX_CACHE = "dlx-cache"
METHOD_PACKAGE_JSON = "package-json"
METHOD_FILE_EXTENSION = "file-extension"


@dataclass(frozen=True)
class ExecutableDetection:
    type: str
    method: str
    in_dlx_cache: bool
    package_json_path: Optional[Path] = None

    @property
    def is_package(self) -> bool:
        return self.type == TYPE_PACKAGE


def is_js_file_path(path: Union[str, Path]) -> bool:
    return Path(path).suffix.lower() in NODE_JS_EXTENSIONS


def find_package_json(path: Union[str, Path]) -> Optional[Path]:
    """Find the nearest package.json at or above the file's directory."""
    current = normalize_path(path).parent
    for directory in (current, *current.parents):
        candidate = directory / PACKAGE_JSON
        if candidate.is_file():
            return candidate
    return None


def detect_dlx_executable_type(path: Union[str, Path], dlx_dir: Path) -> ExecutableDetection:
    absolute = normalize_path(path)
    slot = absolute.relative_to(normalize_path(dlx_dir)).parts[0]
    if (normalize_path(dlx_dir) / slot / NODE_MODULES).exists():
        return ExecutableDetection(TYPE_PACKAGE, METHOD_DLX_CACHE, True)
    return ExecutableDetection(TYPE_BINARY, METHOD_DLX_CACHE, True)


def detect_local_executable_type(path: Union[str, Path]) -> ExecutableDetection:
    package_json = find_package_json(path)
    if package_json is not None:
        try:
            with open(package_json, "r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict) and data.get("bin"):
                return ExecutableDetection(
                    TYPE_PACKAGE, METHOD_PACKAGE_JSON, False, package_json
                )
        except (OSError, ValueError) as e:
            logger.debug(f"Ignoring unreadable {package_json}: {e}")

    if is_js_file_path(path):
        return ExecutableDetection(TYPE_PACKAGE, METHOD_FILE_EXTENSION, False)
    return ExecutableDetection(TYPE_BINARY, METHOD_FILE_EXTENSION, False)


def detect_executable_type(path: Union[str, Path], dlx_dir: Path) -> ExecutableDetection:
    """
    Detect whether path should be run with node or executed directly.

    Example:
        >>> detect_executable_type("/tmp/tool.mjs", dlx_dir).type
        'package'
    """
    if is_in_dlx(path, dlx_dir):
        return detect_dlx_executable_type(path, dlx_dir)
    return detect_local_executable_type(path)


__all__ = [
    "ExecutableDetection",
    "detect_executable_type",
    "detect_dlx_executable_type",
    "detect_local_executable_type",
    "is_js_file_path",
    "find_package_json",
]
