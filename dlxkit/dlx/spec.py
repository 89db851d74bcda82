"""
Package spec parsing.

Understands the spec forms accepted on the command line:

    lodash                  name only
    lodash@4.17.21          exact version
    lodash@^4.17.0          range
    lodash@latest           dist-tag
    @scope/pkg@1.0.0        scoped package
    pkg@git+https://...     git, file, url and alias sources (no version)
    user/repo               GitHub shorthand (no name, no version)
"""

import re
from dataclasses import dataclass
from typing import Optional

# Any of ~ ^ > < = space or ||, or an x/X/* wildcard component (1.x, *)
RANGE_OPERATORS = re.compile(r"[~^><= ]|\|\||(?:^|\.)[xX*](?:\.|$)")

EXACT_VERSION = re.compile(
    r"^v?\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?$"
)

_SOURCE_PREFIXES = (
    "git+",
    "git:",
    "git@",
    "github:",
    "gitlab:",
    "bitbucket:",
    "gist:",
    "file:",
    "http:",
    "https:",
    "npm:",
    "link:",
)

SPEC_VERSION = "version"
SPEC_RANGE = "range"
SPEC_TAG = "tag"
SPEC_SOURCE = "source"


@dataclass(frozen=True)
class PackageSpec:
    """
    A parsed package spec.

    Attributes:
        raw: The spec as given
        name: Package name (or the raw spec for nameless sources)
        version: Version, range or tag; None for names and non-registry sources
        type: 'version', 'range', 'tag' or 'source'
    """

    raw: str
    name: str
    version: Optional[str]
    type: str

    @property
    def normalized(self) -> str:
        """'name@version', just 'name' when no version was given, or the raw source."""
        if self.type == SPEC_SOURCE:
            return self.raw
        return f"{self.name}@{self.version}" if self.version else self.name

    @property
    def is_range(self) -> bool:
        return self.version is not None and is_version_range(self.version)


def is_version_range(version: str) -> bool:
    """
    Check whether a version string contains range operators.

    Example:
        >>> is_version_range("^1.0.0")
        True
        >>> is_version_range("1.0.0")
        False
    """
    return bool(RANGE_OPERATORS.search(version))


def _is_source(text: str) -> bool:
    lowered = text.lower()
    return (
        lowered.startswith(_SOURCE_PREFIXES)
        or re.match(r"^[a-z][a-z0-9+.-]*://", lowered) is not None
        or lowered.startswith((".", "/", "~", "\\"))
        or re.match(r"^[a-zA-Z]:[\\/]", text) is not None
    )


def _classify_version(version: str) -> str:
    if EXACT_VERSION.match(version):
        return SPEC_VERSION
    if is_version_range(version):
        return SPEC_RANGE
    return SPEC_TAG


def parse_package_spec(spec: str) -> PackageSpec:
    """
    Split a package spec into name and version.

    Args:
        spec: Spec string such as '@scope/pkg@1.0.0'

    Returns:
        PackageSpec

    Raises:
        ValueError: If spec is empty

    Example:
        >>> parse_package_spec("@scope/pkg@1.0.0").name
        '@scope/pkg'
    """
    spec = spec.strip() if spec else ""
    if not spec:
        raise ValueError("Package spec cannot be empty")

    if _is_source(spec):
        return PackageSpec(raw=spec, name=spec, version=None, type=SPEC_SOURCE)

    at_index = spec.find("@", 1)
    if at_index == -1:
        name, version = spec, None
    else:
        name, version = spec[:at_index], spec[at_index + 1 :]

    # user/repo shorthand
    if not name.startswith("@") and "/" in name:
        return PackageSpec(raw=spec, name=spec, version=None, type=SPEC_SOURCE)

    if not version:
        return PackageSpec(raw=spec, name=name, version=None, type=SPEC_TAG)

    if _is_source(version):
        return PackageSpec(raw=spec, name=name, version=None, type=SPEC_SOURCE)

    version = version.strip()
    return PackageSpec(raw=spec, name=name, version=version, type=_classify_version(version))


__all__ = [
    "PackageSpec",
    "parse_package_spec",
    "is_version_range",
    "SPEC_VERSION",
    "SPEC_RANGE",
    "SPEC_TAG",
    "SPEC_SOURCE",
]
