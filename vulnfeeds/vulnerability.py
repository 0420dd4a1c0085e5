"""Merge per-source vulnerability details into one normalised record."""

from __future__ import annotations

import logging
from typing import Mapping

from vulnfeeds.models import (
    ALMA,
    ALPINE,
    AMAZON,
    ARCH_LINUX,
    CBL_MARINER,
    CVSS,
    DEBIAN,
    ECOSYSTEM_COCOAPODS,
    ECOSYSTEM_GO,
    ECOSYSTEM_NUGET,
    ECOSYSTEM_PIP,
    ECOSYSTEM_SWIFT,
    GHSA,
    GLAD,
    K8S_VULN_DB,
    NODEJS_SECURITY_WG,
    NVD,
    ORACLE_OVAL,
    OSV,
    PHOTON,
    PHP_SECURITY_ADVISORIES,
    REDHAT,
    ROCKY,
    RUBYSEC,
    SUSE_CVRF,
    UBUNTU,
    Severity,
    Vulnerability,
    VulnerabilityDetail,
)
from vulnfeeds.store import Store, StoreError

logger = logging.getLogger(__name__)

REJECT_MARKER = "** REJECT **"

# Sources in order of preference when picking a single value.
SOURCE_PRIORITY: tuple[str, ...] = (
    NVD,
    REDHAT,
    DEBIAN,
    UBUNTU,
    ALPINE,
    AMAZON,
    ORACLE_OVAL,
    SUSE_CVRF,
    PHOTON,
    ARCH_LINUX,
    ALMA,
    ROCKY,
    CBL_MARINER,
    RUBYSEC,
    PHP_SECURITY_ADVISORIES,
    NODEJS_SECURITY_WG,
    GHSA,
    GLAD,
    OSV,
    K8S_VULN_DB,
)

Details = Mapping[str, VulnerabilityDetail]


def _prioritised(details: Details):
    """Yield the details of known sources, most preferred first."""
    for source in SOURCE_PRIORITY:
        detail = details.get(source)
        if detail is not None:
            yield source, detail


def score_to_severity(score: float) -> Severity:
    """Map a CVSS score to a severity band."""
    if score >= 9.0:
        return Severity.CRITICAL
    if score >= 7.0:
        return Severity.HIGH
    if score >= 4.0:
        return Severity.MEDIUM
    if score > 0.0:
        return Severity.LOW
    return Severity.UNKNOWN


def _cvss(details: Details) -> dict[str, CVSS]:
    result = {}
    for vendor, detail in details.items():
        no_v2 = not detail.cvss_vector or detail.cvss_score == 0
        no_v3 = not detail.cvss_vector_v3 or detail.cvss_score_v3 == 0
        if no_v2 and no_v3:
            continue
        result[vendor] = CVSS(
            v2_vector=detail.cvss_vector,
            v3_vector=detail.cvss_vector_v3,
            v2_score=detail.cvss_score,
            v3_score=detail.cvss_score_v3,
        )
    return result


def _vendor_severity(details: Details) -> dict[str, Severity]:
    result = {}
    for vendor, detail in details.items():
        if detail.severity_v3 != Severity.UNKNOWN:
            result[vendor] = detail.severity_v3
        elif detail.severity != Severity.UNKNOWN:
            result[vendor] = detail.severity
        elif detail.cvss_score_v3 > 0:
            result[vendor] = score_to_severity(detail.cvss_score_v3)
        elif detail.cvss_score > 0:
            result[vendor] = score_to_severity(detail.cvss_score)
    return result


def _severity(details: Details) -> Severity:
    for _, detail in _prioritised(details):
        if detail.cvss_score_v3 > 0:
            return score_to_severity(detail.cvss_score_v3)
        if detail.cvss_score > 0:
            return score_to_severity(detail.cvss_score)
        if detail.severity_v3 != Severity.UNKNOWN:
            return Severity(detail.severity_v3)
        if detail.severity != Severity.UNKNOWN:
            return Severity(detail.severity)
    return Severity.UNKNOWN


def _title(details: Details) -> str:
    return next((d.title for _, d in _prioritised(details) if d.title), "")


def _description(details: Details) -> str:
    return next((d.description for _, d in _prioritised(details) if d.description), "")


def _cwe_ids(details: Details) -> list[str]:
    return next((list(d.cwe_ids) for _, d in _prioritised(details) if d.cwe_ids), [])


def _references(details: Details) -> list[str]:
    references: set[str] = set()
    for source, detail in _prioritised(details):
        # Amazon lists unrelated references.
        if source == AMAZON:
            continue
        for ref in detail.references:
            references.update(ref.strip().split("\n"))
    return sorted(references)


class Normalizer:
    """Reads vulnerability details from a store and merges them."""

    def __init__(self, store: Store | None = None) -> None:
        self.store = store

    def get_details(self, vuln_id: str) -> dict[str, VulnerabilityDetail] | None:
        """Return details per source, or None when absent or unreadable."""
        if self.store is None:
            return None
        try:
            details = self.store.get_vulnerability_detail(vuln_id)
        except StoreError as exc:
            logger.warning("Failed to get vulnerability detail: %s", exc)
            return None
        return details or None

    def is_rejected(self, details: Details) -> bool:
        return any(REJECT_MARKER in d.description for _, d in _prioritised(details))

    def normalize(self, details: Details) -> Vulnerability:
        nvd = details.get(NVD)
        return Vulnerability(
            title=_title(details),
            description=_description(details),
            severity=str(_severity(details)),
            cwe_ids=_cwe_ids(details),
            vendor_severity=_vendor_severity(details),
            cvss=_cvss(details),
            references=_references(details),
            published_date=nvd.published_date if nvd else None,
            last_modified_date=nvd.last_modified_date if nvd else None,
        )


def normalize_pkg_name(ecosystem: str, pkg_name: str) -> str:
    """Normalise a package name the way its ecosystem compares names."""
    if ecosystem == ECOSYSTEM_PIP:
        return pkg_name.lower().replace("_", "-")
    if ecosystem == ECOSYSTEM_SWIFT:
        if pkg_name.startswith("https://"):
            pkg_name = pkg_name[len("https://"):]
        if pkg_name.endswith(".git"):
            pkg_name = pkg_name[: -len(".git")]
        return pkg_name
    if ecosystem in (ECOSYSTEM_NUGET, ECOSYSTEM_GO, ECOSYSTEM_COCOAPODS):
        return pkg_name
    return pkg_name.lower()