"""Core data types shared by the vulnerability feeds."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Iterable, Mapping

# Data source identifiers.
NVD = "nvd"
REDHAT = "redhat"
REDHAT_OVAL = "redhat-oval"
DEBIAN = "debian"
UBUNTU = "ubuntu"
CENTOS = "centos"
ROCKY = "rocky"
FEDORA = "fedora"
AMAZON = "amazon"
ORACLE_OVAL = "oracle-oval"
SUSE_CVRF = "suse-cvrf"
ALPINE = "alpine"
ARCH_LINUX = "arch-linux"
ALMA = "alma"
CBL_MARINER = "cbl-mariner"
PHOTON = "photon"
RUBYSEC = "ruby-advisory-db"
PHP_SECURITY_ADVISORIES = "php-security-advisories"
NODEJS_SECURITY_WG = "nodejs-security-wg"
GHSA = "ghsa"
GLAD = "glad"
OSV = "osv"
WOLFI = "wolfi"
CHAINGUARD = "chainguard"
BITNAMI_VULNDB = "bitnami"
K8S_VULN_DB = "k8s"

# Package ecosystems.
ECOSYSTEM_UNKNOWN = "unknown"
ECOSYSTEM_NPM = "npm"
ECOSYSTEM_COMPOSER = "composer"
ECOSYSTEM_PIP = "pip"
ECOSYSTEM_RUBYGEMS = "rubygems"
ECOSYSTEM_CARGO = "cargo"
ECOSYSTEM_NUGET = "nuget"
ECOSYSTEM_MAVEN = "maven"
ECOSYSTEM_GO = "go"
ECOSYSTEM_CONAN = "conan"
ECOSYSTEM_ERLANG = "erlang"
ECOSYSTEM_PUB = "pub"
ECOSYSTEM_SWIFT = "swift"
ECOSYSTEM_COCOAPODS = "cocoapods"
ECOSYSTEM_BITNAMI = "bitnami"
ECOSYSTEM_KUBERNETES = "k8s"


class Severity(IntEnum):
    """Normalised severity, ordered from least to most severe."""

    UNKNOWN = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    def __str__(self) -> str:
        return self.name


_FRACTION = re.compile(r"\.(\d+)")


def _format_time(moment: datetime) -> str:
    if moment.tzinfo is None or moment.utcoffset() == timezone.utc.utcoffset(None):
        return moment.replace(tzinfo=None).isoformat() + "Z"
    return moment.isoformat()


def _parse_time(text: str) -> datetime:
    text = text.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    return datetime.fromisoformat(text)


def _compact(pairs: Iterable[tuple[str, Any]]) -> dict[str, Any]:
    """Drop empty values, as the stored JSON omits them."""
    return {key: value for key, value in pairs if value not in (None, "", 0, [], {})}


@dataclass(frozen=True)
class DataSource:
    """Where a set of advisories came from."""

    id: str = ""
    name: str = ""
    url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _compact([("ID", self.id), ("Name", self.name), ("URL", self.url)])

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DataSource:
        return cls(
            id=data.get("ID", ""),
            name=data.get("Name", ""),
            url=data.get("URL", ""),
        )


@dataclass
class Advisory:
    """A single fix or status statement for one package."""

    vulnerability_id: str = ""
    vendor_ids: list[str] = field(default_factory=list)
    arches: list[str] = field(default_factory=list)
    severity: Severity = Severity.UNKNOWN
    fixed_version: str = ""
    affected_version: str = ""
    vulnerable_versions: list[str] = field(default_factory=list)
    patched_versions: list[str] = field(default_factory=list)
    unaffected_versions: list[str] = field(default_factory=list)
    data_source: DataSource | None = None
    custom: Any = None

    def to_dict(self) -> dict[str, Any]:
        data = _compact(
            [
                ("VulnerabilityID", self.vulnerability_id),
                ("VendorIDs", list(self.vendor_ids)),
                ("Arches", list(self.arches)),
                ("Severity", int(self.severity)),
                ("FixedVersion", self.fixed_version),
                ("AffectedVersion", self.affected_version),
                ("VulnerableVersions", list(self.vulnerable_versions)),
                ("PatchedVersions", list(self.patched_versions)),
                ("UnaffectedVersions", list(self.unaffected_versions)),
            ]
        )
        if self.data_source is not None:
            data["DataSource"] = self.data_source.to_dict()
        if self.custom is not None:
            data["Custom"] = self.custom
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Advisory:
        source = data.get("DataSource")
        return cls(
            vulnerability_id=data.get("VulnerabilityID", ""),
            vendor_ids=list(data.get("VendorIDs") or []),
            arches=list(data.get("Arches") or []),
            severity=Severity(data.get("Severity", 0)),
            fixed_version=data.get("FixedVersion", ""),
            affected_version=data.get("AffectedVersion", ""),
            vulnerable_versions=list(data.get("VulnerableVersions") or []),
            patched_versions=list(data.get("PatchedVersions") or []),
            unaffected_versions=list(data.get("UnaffectedVersions") or []),
            data_source=DataSource.from_dict(source) if source is not None else None,
            custom=data.get("Custom"),
        )


@dataclass
class Advisories:
    """Several advisories for one package, with a fixed version kept for older readers."""

    fixed_version: str = ""
    entries: list[Advisory] = field(default_factory=list)
    custom: Any = None

    def to_dict(self) -> dict[str, Any]:
        data = _compact(
            [
                ("FixedVersion", self.fixed_version),
                ("Entries", [entry.to_dict() for entry in self.entries]),
            ]
        )
        if self.custom is not None:
            data["Custom"] = self.custom
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Advisories:
        return cls(
            fixed_version=data.get("FixedVersion", ""),
            entries=[Advisory.from_dict(entry) for entry in data.get("Entries") or []],
            custom=data.get("Custom"),
        )


@dataclass
class VulnerabilityDetail:
    """What one data source says about a vulnerability."""

    id: str = ""
    cvss_score: float = 0.0
    cvss_vector: str = ""
    cvss_score_v3: float = 0.0
    cvss_vector_v3: str = ""
    severity: Severity = Severity.UNKNOWN
    severity_v3: Severity = Severity.UNKNOWN
    cwe_ids: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    title: str = ""
    description: str = ""
    published_date: datetime | None = None
    last_modified_date: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            [
                ("ID", self.id),
                ("CvssScore", self.cvss_score),
                ("CvssVector", self.cvss_vector),
                ("CvssScoreV3", self.cvss_score_v3),
                ("CvssVectorV3", self.cvss_vector_v3),
                ("Severity", int(self.severity)),
                ("SeverityV3", int(self.severity_v3)),
                ("CweIDs", list(self.cwe_ids)),
                ("References", list(self.references)),
                ("Title", self.title),
                ("Description", self.description),
                (
                    "PublishedDate",
                    _format_time(self.published_date) if self.published_date else None,
                ),
                (
                    "LastModifiedDate",
                    _format_time(self.last_modified_date) if self.last_modified_date else None,
                ),
            ]
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> VulnerabilityDetail:
        published = data.get("PublishedDate")
        modified = data.get("LastModifiedDate")
        return cls(
            id=data.get("ID", ""),
            cvss_score=float(data.get("CvssScore", 0.0)),
            cvss_vector=data.get("CvssVector", ""),
            cvss_score_v3=float(data.get("CvssScoreV3", 0.0)),
            cvss_vector_v3=data.get("CvssVectorV3", ""),
            severity=Severity(data.get("Severity", 0)),
            severity_v3=Severity(data.get("SeverityV3", 0)),
            cwe_ids=list(data.get("CweIDs") or []),
            references=list(data.get("References") or []),
            title=data.get("Title", ""),
            description=data.get("Description", ""),
            published_date=_parse_time(published) if published else None,
            last_modified_date=_parse_time(modified) if modified else None,
        )


@dataclass
class CVSS:
    """CVSS vectors and scores given by one vendor."""

    v2_vector: str = ""
    v3_vector: str = ""
    v2_score: float = 0.0
    v3_score: float = 0.0


@dataclass
class Vulnerability:
    """A vulnerability merged from the details of every source."""

    title: str = ""
    description: str = ""
    severity: str = ""
    cwe_ids: list[str] = field(default_factory=list)
    vendor_severity: dict[str, Severity] = field(default_factory=dict)
    cvss: dict[str, CVSS] = field(default_factory=dict)
    references: list[str] = field(default_factory=list)
    published_date: datetime | None = None
    last_modified_date: datetime | None = None