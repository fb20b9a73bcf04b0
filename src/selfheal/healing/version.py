"""Semantic versions and registry keys for strategy plugins."""

import re
from functools import total_ordering
from typing import NamedTuple, Tuple, Union

_SEMVER_RE = re.compile(
    r"^v?(?P<core>[0-9A-Za-z.]+?)"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?"
    r"(?:\+(?P<build>[0-9A-Za-z.-]+))?$"
)

PrereleaseId = Union[int, str]


@total_ordering
class SemanticVersion:
    """Parsed SemVer 2.0 version.

    Missing minor/patch components default to 0 (``"2"`` == ``"2.0.0"``).
    Build metadata is kept for display but ignored when comparing.
    """

    __slots__ = ("major", "minor", "patch", "prerelease", "build")

    def __init__(
        self,
        major: int,
        minor: int = 0,
        patch: int = 0,
        prerelease: Tuple[PrereleaseId, ...] = (),
        build: str = "",
    ):
        if min(major, minor, patch) < 0:
            raise ValueError("Version components must be non-negative")
        self.major = major
        self.minor = minor
        self.patch = patch
        self.prerelease = tuple(prerelease)
        self.build = build

    @classmethod
    def parse(cls, value: Union[str, "SemanticVersion"]) -> "SemanticVersion":
        """Parse a version string such as ``1.2.3-beta.1+build.5``.

        Raises:
            ValueError: If the string is not a valid semantic version
        """
        if isinstance(value, SemanticVersion):
            return value

        match = _SEMVER_RE.match(value.strip())
        if not match:
            raise ValueError(f"Invalid semantic version: {value!r}")

        core = match.group("core").split(".")
        if len(core) > 3 or not all(part.isdigit() for part in core):
            raise ValueError(f"Invalid semantic version: {value!r}")
        numbers = [int(part) for part in core] + [0] * (3 - len(core))

        prerelease: Tuple[PrereleaseId, ...] = ()
        if match.group("pre"):
            identifiers = match.group("pre").split(".")
            if any(not ident for ident in identifiers):
                raise ValueError(f"Empty prerelease identifier in {value!r}")
            prerelease = tuple(
                int(ident) if ident.isdigit() else ident for ident in identifiers
            )

        return cls(*numbers, prerelease=prerelease, build=match.group("build") or "")

    @property
    def core(self) -> Tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    def _prerelease_key(self):
        # A release sorts after every prerelease of the same core version.
        if not self.prerelease:
            return ((1,),)
        return tuple(
            (0, 0, ident, "") if isinstance(ident, int) else (0, 1, 0, ident)
            for ident in self.prerelease
        )

    def _key(self):
        return (self.core, self._prerelease_key())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: "SemanticVersion") -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(str(ident) for ident in self.prerelease)
        if self.build:
            text += "+" + self.build
        return text

    def __repr__(self) -> str:
        return f"SemanticVersion('{self}')"


class PluginKey(NamedTuple):
    """Registry key: strategy name plus parsed version."""

    name: str
    version: SemanticVersion

    @classmethod
    def of(cls, name: str, version: Union[str, SemanticVersion]) -> "PluginKey":
        return cls(name, SemanticVersion.parse(version))

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"
