"""SUSE and openSUSE CVRF advisories as a vulnerability feed."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any, Iterable, Mapping

from vulnfeeds.models import SUSE_CVRF, Advisory, DataSource, Severity, VulnerabilityDetail
from vulnfeeds.store import Store, StoreError, walk_files

logger = logging.getLogger(__name__)

SUSE_DIR = Path("cvrf", "suse")
PLATFORM_OPENSUSE_FORMAT = "openSUSE Leap {}"
PLATFORM_SUSE_LINUX_FORMAT = "SUSE Linux Enterprise {}"
OPENSUSE_SOURCE_NAME = "opensuse-cvrf"

SOURCE = DataSource(
    id=SUSE_CVRF,
    name="SUSE CVRF",
    url="https://ftp.suse.com/pub/projects/security/cvrf/",
)

_VERSION = re.compile(
    r"v?\d+(?:\.\d+)*"
    r"(?:-?[0-9A-Za-z\-~]+(?:\.[0-9A-Za-z\-~]+)*)?"
    r"(?:\+[0-9A-Za-z\-~]+(?:\.[0-9A-Za-z\-~]+)*)?"
)
_INTEGER = re.compile(r"[+-]?\d+")


class Distribution(IntEnum):
    """Which family of CVRF documents a source reads."""

    SUSE_ENTERPRISE_LINUX = 0
    OPENSUSE = 1


_SUBDIRS = {
    Distribution.SUSE_ENTERPRISE_LINUX: "suse",
    Distribution.OPENSUSE: "opensuse",
}
_BUCKET_FORMATS = {
    Distribution.SUSE_ENTERPRISE_LINUX: PLATFORM_SUSE_LINUX_FORMAT,
    Distribution.OPENSUSE: PLATFORM_OPENSUSE_FORMAT,
}


def _items(value: Any) -> list[Mapping[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise TypeError("expected a JSON array")
    for item in value:
        if not isinstance(item, Mapping):
            raise TypeError("expected a JSON object")
    return value


def _mapping(value: Any) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise TypeError("expected a JSON object")
    return value


@dataclass
class DocumentNote:
    """A note in a CVRF document."""

    text: str = ""
    title: str = ""
    type: str = ""


@dataclass
class Relationship:
    """Ties a package build to the product it ships in."""

    product_reference: str = ""
    relates_to_product_reference: str = ""
    relation_type: str = ""


@dataclass
class Threat:
    """A threat statement; its severity is a word such as "important"."""

    type: str = ""
    severity: str = ""


@dataclass
class Reference:
    """A link attached to a document or vulnerability."""

    url: str = ""
    description: str = ""


@dataclass
class CvrfVulnerability:
    """One vulnerability listed in a CVRF document."""

    cve: str = ""
    description: str = ""
    threats: list[Threat] = field(default_factory=list)
    references: list[Reference] = field(default_factory=list)


def _references(value: Any) -> list[Reference]:
    return [
        Reference(url=ref.get("URL", ""), description=ref.get("Description", ""))
        for ref in _items(value)
    ]


@dataclass
class SuseCvrf:
    """A SUSE CVRF security document."""

    title: str = ""
    tracking_id: str = ""
    notes: list[DocumentNote] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)
    references: list[Reference] = field(default_factory=list)
    vulnerabilities: list[CvrfVulnerability] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SuseCvrf:
        if not isinstance(data, Mapping):
            raise TypeError("a CVRF document must be a JSON object")
        tracking = _mapping(data.get("Tracking"))
        tree = _mapping(data.get("ProductTree"))
        return cls(
            title=data.get("Title", ""),
            tracking_id=tracking.get("ID", ""),
            notes=[
                DocumentNote(
                    text=note.get("Text", ""),
                    title=note.get("Title", ""),
                    type=note.get("Type", ""),
                )
                for note in _items(data.get("Notes"))
            ],
            relationships=[
                Relationship(
                    product_reference=rel.get("ProductReference", ""),
                    relates_to_product_reference=rel.get("RelatesToProductReference", ""),
                    relation_type=rel.get("RelationType", ""),
                )
                for rel in _items(tree.get("Relationships"))
            ],
            references=_references(data.get("References")),
            vulnerabilities=[
                CvrfVulnerability(
                    cve=vuln.get("CVE", ""),
                    description=vuln.get("Description", ""),
                    threats=[
                        Threat(type=threat.get("Type", ""), severity=threat.get("Severity", ""))
                        for threat in _items(vuln.get("Threats"))
                    ],
                    references=_references(vuln.get("References")),
                )
                for vuln in _items(data.get("Vulnerabilities"))
            ],
        )


@dataclass
class Package:
    """A package name with the version that fixes it."""

    name: str = ""
    fixed_version: str = ""


@dataclass
class AffectedPackage:
    """A fixed package on one platform."""

    package: Package
    os_ver: str


def split_pkg_name(pkg_name: str) -> tuple[str, str]:
    """Split name-version-release into the name and version-release."""
    name, sep, release = pkg_name.rpartition("-")
    if not sep:
        return "", ""
    name, sep, version = name.rpartition("-")
    if not sep:
        return "", ""
    return name, f"{version}-{release}"


def get_os_version(platform_name: str) -> str:
    """Return the platform bucket for a product name, or "" when unsupported."""
    if "SUSE Manager" in platform_name:
        return ""
    if platform_name.startswith("openSUSE Leap"):
        parts = platform_name.split(" ")
        if len(parts) < 3:
            logger.warning("invalid version: %s", platform_name)
            return ""
        if not _VERSION.fullmatch(parts[2]):
            logger.warning("invalid version: %s", platform_name)
            return ""
        return PLATFORM_OPENSUSE_FORMAT.format(parts[2])
    if "SUSE Linux Enterprise" in platform_name:
        if platform_name.startswith(
            ("SUSE Linux Enterprise Storage", "SUSE Linux Enterprise Micro")
        ):
            return ""
        words = platform_name.replace("-", " ").split()
        numbers: list[str] = []
        for word in reversed(words[1:]):
            candidate = word[2:] if word.startswith("SP") else word
            if not _INTEGER.fullmatch(candidate):
                continue
            numbers.append(str(int(candidate)))
            if len(numbers) == 2:
                break
        if not numbers:
            logger.warning("failed to detect version: %s", platform_name)
            return ""
        if len(numbers) == 1:
            return PLATFORM_SUSE_LINUX_FORMAT.format(numbers[0])
        return PLATFORM_SUSE_LINUX_FORMAT.format(f"{numbers[1]}.{numbers[0]}")
    return ""


def get_affected_packages(relationships: Iterable[Relationship]) -> list[AffectedPackage]:
    """Collect the packages whose product maps to a supported platform."""
    packages = []
    for relationship in relationships:
        os_ver = get_os_version(relationship.relates_to_product_reference)
        if not os_ver:
            continue
        name, version = split_pkg_name(relationship.product_reference)
        packages.append(
            AffectedPackage(package=Package(name=name, fixed_version=version), os_ver=os_ver)
        )
    return packages


def get_detail(notes: Iterable[DocumentNote]) -> str:
    """Return the text of the general "Details" note."""
    return next(
        (note.text for note in notes if note.type == "General" and note.title == "Details"),
        "",
    )


def severity_from_threat(severity: str) -> Severity:
    """Map a CVRF threat description to a normalised severity."""
    return {
        "low": Severity.LOW,
        "moderate": Severity.MEDIUM,
        "important": Severity.HIGH,
        "critical": Severity.CRITICAL,
    }.get(severity, Severity.UNKNOWN)


def _decode_cvrf(path: Path) -> SuseCvrf:
    try:
        return SuseCvrf.from_dict(json.loads(path.read_text(encoding="utf-8")))
    except (ValueError, TypeError, AttributeError) as exc:
        raise ValueError(f"failed to decode SUSE CVRF JSON: {exc}") from exc


class SuseCvrfSource:
    """Loads SUSE or openSUSE CVRF documents into a store and reads advisories back."""

    def __init__(self, store: Store, dist: Distribution | int) -> None:
        self.store = store
        self.dist = Distribution(dist)

    def name(self) -> str:
        if self.dist is Distribution.OPENSUSE:
            return OPENSUSE_SOURCE_NAME
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Read the CVRF documents for this distribution and save them."""
        logger.info("Saving SUSE CVRF")
        root = Path(directory, "vuln-list", SUSE_DIR, _SUBDIRS[self.dist])
        try:
            cvrfs = [_decode_cvrf(path) for path in walk_files(root)]
        except ValueError as exc:
            raise ValueError(f"error in SUSE CVRF walk: {exc}") from exc
        try:
            with self.store.batch_update():
                self._commit(cvrfs)
        except StoreError as exc:
            raise StoreError(f"error in SUSE CVRF save: {exc}") from exc

    def _commit(self, cvrfs: Iterable[SuseCvrf]) -> None:
        for cvrf in cvrfs:
            affected = get_affected_packages(cvrf.relationships)
            if not affected:
                continue

            for item in affected:
                self.store.put_data_source(item.os_ver, SOURCE)
                try:
                    self.store.put_advisory_detail(
                        cvrf.tracking_id,
                        item.package.name,
                        [item.os_ver],
                        Advisory(fixed_version=item.package.fixed_version),
                    )
                except StoreError as exc:
                    raise StoreError(f"unable to save {item.os_ver} CVRF: {exc}") from exc

            severity = max(
                (
                    severity_from_threat(threat.severity)
                    for vuln in cvrf.vulnerabilities
                    for threat in vuln.threats
                ),
                default=Severity.UNKNOWN,
            )
            detail = VulnerabilityDetail(
                references=[ref.url for ref in cvrf.references],
                title=cvrf.title,
                description=get_detail(cvrf.notes),
                severity=severity,
            )
            try:
                self.store.put_vulnerability_detail(cvrf.tracking_id, SOURCE.id, detail)
            except StoreError as exc:
                raise StoreError(f"failed to save SUSE CVRF vulnerability: {exc}") from exc
            try:
                self.store.put_vulnerability_id(cvrf.tracking_id)
            except StoreError as exc:
                raise StoreError(f"failed to save the vulnerability ID: {exc}") from exc

    def get(self, version: str, pkg_name: str) -> list[Advisory]:
        """Return the advisories of a package for one release."""
        bucket = _BUCKET_FORMATS[self.dist].format(version)
        try:
            return self.store.get_advisories(bucket, pkg_name)
        except StoreError as exc:
            raise StoreError(f"failed to get SUSE advisories: {exc}") from exc