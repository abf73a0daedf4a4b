"""
Release diff computation

This module handles:
- The package, release and diff models shared by storage, cache and API
- Classifying package changes between two releases into added, upgraded,
  downgraded and removed packages

compute_diff is a pure function: it does no I/O and keeps no state, so it
can be called from any number of request threads at once.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from differ.version import is_newer


class Package(BaseModel):
    """A package installed in a release"""

    name: str
    version: str


class Release(BaseModel):
    """A dated snapshot of the packages installed in an image"""

    digest: str
    date: datetime
    packages: list[Package] = Field(default_factory=list)


class PackageDiff(BaseModel):
    """Represents a single package change"""

    name: str
    old_version: Optional[str] = None
    new_version: Optional[str] = None


class DiffResult(BaseModel):
    """Package changes between an old and a new release"""

    added: list[PackageDiff] = Field(default_factory=list)
    upgraded: list[PackageDiff] = Field(default_factory=list)
    downgraded: list[PackageDiff] = Field(default_factory=list)
    removed: list[PackageDiff] = Field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON responses, omitting unset versions"""
        return self.model_dump(exclude_none=True)


def package_versions(packages: list[Package]) -> dict[str, str]:
    """Map package names to versions, keeping the release order"""
    return {package.name: package.version for package in packages}


def compute_diff(old: Release, new: Release) -> DiffResult:
    """
    Compute the package changes going from ``old`` to ``new``.

    Packages with identical versions in both releases are left out. The
    added, upgraded and downgraded lists follow the package order of the
    new release, the removed list follows the order of the old release.

    Args:
        old: Release to diff from
        new: Release to diff to

    Returns:
        DiffResult with the four classified lists
    """
    old_versions = package_versions(old.packages)
    new_versions = package_versions(new.packages)

    result = DiffResult()

    for name, new_version in new_versions.items():
        old_version = old_versions.get(name)
        if old_version is None:
            result.added.append(PackageDiff(name=name, new_version=new_version))
        elif old_version == new_version:
            continue
        elif is_newer(new_version, old_version):
            result.upgraded.append(
                PackageDiff(name=name, old_version=old_version, new_version=new_version)
            )
        else:
            result.downgraded.append(
                PackageDiff(name=name, old_version=old_version, new_version=new_version)
            )

    for name, old_version in old_versions.items():
        if name not in new_versions:
            result.removed.append(PackageDiff(name=name, old_version=old_version))

    return result
