"""
Image and release storage

Thin data access on top of differ.database. Releases are only ever created
and looked up, never updated, which is what keeps cached diffs valid.
"""

import logging
from datetime import UTC, datetime
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError

from differ import database as models
from differ.database import Database
from differ.diff import Package, Release

log = logging.getLogger("differ.storage")


class StorageError(Exception):
    """Base class for storage failures"""


class NotFoundError(StorageError):
    """The requested image or release does not exist"""


class DuplicateError(StorageError):
    """The image, release or credential already exists"""


class ReleaseSummary(BaseModel):
    digest: str
    date: datetime


class ImageSummary(BaseModel):
    """An image with the digests and dates of its releases, oldest first"""

    name: str
    releases: list[ReleaseSummary] = []


def to_utc(date: datetime) -> datetime:
    """Normalize a datetime to naive UTC as stored by SQLite"""
    if date.tzinfo is not None:
        date = date.astimezone(UTC)
    return date.replace(tzinfo=None)


def from_utc(date: datetime) -> datetime:
    return date.replace(tzinfo=UTC)


def _release_from_model(release: models.Release) -> Release:
    return Release(
        digest=release.digest,
        date=from_utc(release.date),
        packages=[Package(name=p.name, version=p.version) for p in release.packages],
    )


def _image_from_model(image: models.Image) -> ImageSummary:
    return ImageSummary(
        name=image.name,
        releases=[
            ReleaseSummary(digest=r.digest, date=from_utc(r.date)) for r in image.releases
        ],
    )


class Storage:
    """Image and release lookups backed by a Database"""

    def __init__(self, db: Database):
        self.db = db

    def _get_image_model(self, session, name: str) -> models.Image:
        image = session.query(models.Image).filter_by(name=name).first()
        if image is None:
            raise NotFoundError(f"Image {name} not found")
        return image

    def list_images(self) -> list[ImageSummary]:
        session = self.db.get_session()
        try:
            images = session.query(models.Image).order_by(models.Image.name).all()
            return [_image_from_model(image) for image in images]
        finally:
            session.close()

    def get_image(self, name: str) -> ImageSummary:
        """Get an image by name.

        Raises:
            NotFoundError: No image with that name exists
        """
        session = self.db.get_session()
        try:
            return _image_from_model(self._get_image_model(session, name))
        finally:
            session.close()

    def add_image(self, name: str) -> ImageSummary:
        """Create a new image without releases.

        Raises:
            DuplicateError: An image with that name already exists
        """
        session = self.db.get_session()
        try:
            image = models.Image(name=name)
            session.add(image)
            session.commit()
            log.info(f"Created image {name}")
            return ImageSummary(name=name)
        except IntegrityError as e:
            session.rollback()
            raise DuplicateError(f"Image {name} already exists") from e
        finally:
            session.close()

    def lookup_release(self, image_name: str, digest: str) -> Release:
        """Get a release of an image by its digest.

        Args:
            image_name: Name of the image owning the release
            digest: Digest of the release

        Returns:
            Release with its packages in insertion order

        Raises:
            NotFoundError: The image or the release does not exist
        """
        session = self.db.get_session()
        try:
            image = self._get_image_model(session, image_name)
            release = (
                session.query(models.Release)
                .filter_by(image_id=image.id, digest=digest)
                .first()
            )
            if release is None:
                raise NotFoundError(f"Release {digest} of image {image_name} not found")
            return _release_from_model(release)
        finally:
            session.close()

    def latest_release(self, image_name: str) -> Release:
        """Get the most recent release of an image by date.

        Raises:
            NotFoundError: The image does not exist or has no releases
        """
        session = self.db.get_session()
        try:
            image = self._get_image_model(session, image_name)
            release = (
                session.query(models.Release)
                .filter_by(image_id=image.id)
                .order_by(models.Release.date.desc(), models.Release.id.desc())
                .first()
            )
            if release is None:
                raise NotFoundError(f"Image {image_name} has no releases")
            return _release_from_model(release)
        finally:
            session.close()

    def add_release(
        self,
        image_name: str,
        digest: str,
        packages: list[Package],
        date: Optional[datetime] = None,
    ) -> Release:
        """Create a new release for an image.

        Args:
            image_name: Name of the image to add the release to
            digest: Digest of the release, unique per image
            packages: Installed packages, unique by name
            date: Release date, defaults to now

        Raises:
            NotFoundError: The image does not exist
            DuplicateError: The digest exists or a package name repeats
        """
        names = [package.name for package in packages]
        if len(names) != len(set(names)):
            duplicates = sorted({name for name in names if names.count(name) > 1})
            raise DuplicateError(f"Duplicate packages in release: {', '.join(duplicates)}")

        if date is None:
            date = datetime.now(UTC)

        session = self.db.get_session()
        try:
            image = self._get_image_model(session, image_name)
            release = models.Release(
                image_id=image.id,
                digest=digest,
                date=to_utc(date),
                packages=[
                    models.Package(name=p.name, version=p.version) for p in packages
                ],
            )
            session.add(release)
            session.commit()
            log.info(
                f"Created release {digest} of {image_name} with {len(packages)} packages"
            )
            return _release_from_model(release)
        except IntegrityError as e:
            session.rollback()
            raise DuplicateError(
                f"Release {digest} of image {image_name} already exists"
            ) from e
        finally:
            session.close()

    def fetch_authorizations(self) -> dict[str, str]:
        """Return all API credentials as a name to password mapping"""
        session = self.db.get_session()
        try:
            return {
                auth.name: auth.password
                for auth in session.query(models.Authorization).all()
            }
        finally:
            session.close()

    def add_authorization(self, name: str, password: str) -> None:
        session = self.db.get_session()
        try:
            session.add(models.Authorization(name=name, password=password))
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise DuplicateError(f"Authorization {name} already exists") from e
        finally:
            session.close()
