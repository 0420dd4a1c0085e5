"""Ubuntu CVE Tracker entries as a vulnerability feed."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

from vulnfeeds.models import UBUNTU, Advisory, DataSource, Severity, VulnerabilityDetail
from vulnfeeds.store import Store, StoreError, walk_files

logger = logging.getLogger(__name__)

UBUNTU_DIR = "ubuntu"
PLATFORM_FORMAT = "ubuntu {}"
TARGET_STATUSES = ("needed", "deferred", "released")

UBUNTU_RELEASES_MAPPING: dict[str, str] = {
    "precise": "12.04",
    "quantal": "12.10",
    "raring": "13.04",
    "saucy": "13.10",
    "trusty": "14.04",
    "utopic": "14.10",
    "vivid": "15.04",
    "wily": "15.10",
    "xenial": "16.04",
    "yakkety": "16.10",
    "zesty": "17.04",
    "artful": "17.10",
    "bionic": "18.04",
    "cosmic": "18.10",
    "disco": "19.04",
    "eoan": "19.10",
    "focal": "20.04",
    "groovy": "20.10",
    "hirsute": "21.04",
    "impish": "21.10",
    "jammy": "22.04",
    "kinetic": "22.10",
    "lunar": "23.04",
    "mantic": "23.10",
    "noble": "24.04",
    # ESM releases.
    "precise/esm": "12.04-ESM",
    "trusty/esm": "14.04-ESM",
    "esm-infra/xenial": "16.04-ESM",
}

SOURCE = DataSource(
    id=UBUNTU,
    name="Ubuntu CVE Tracker",
    url="https://git.launchpad.net/ubuntu-cve-tracker",
)


def _field(data: Mapping[str, Any], name: str, default: Any = None) -> Any:
    """Look a key up exactly first, then ignoring case."""
    if name in data:
        return data[name]
    lowered = name.lower()
    for key, value in data.items():
        if isinstance(key, str) and key.lower() == lowered:
            return value
    return default


def _mapping(value: Any) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise TypeError("expected a JSON object")
    return value


@dataclass
class PatchStatus:
    """The state of a package on one release."""

    status: str = ""
    note: str = ""


@dataclass
class UbuntuCVE:
    """One CVE as the Ubuntu tracker describes it."""

    description: str = ""
    candidate: str = ""
    priority: str = ""
    patches: dict[str, dict[str, PatchStatus]] = field(default_factory=dict)
    references: list[str] = field(default_factory=list)
    public_date: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UbuntuCVE:
        if not isinstance(data, Mapping):
            raise TypeError("a CVE entry must be a JSON object")
        patches: dict[str, dict[str, PatchStatus]] = {}
        for pkg_name, patch in _mapping(_field(data, "Patches")).items():
            releases: dict[str, PatchStatus] = {}
            for release, status in _mapping(patch).items():
                status = _mapping(status)
                releases[release] = PatchStatus(
                    status=_field(status, "Status") or "",
                    note=_field(status, "Note") or "",
                )
            patches[pkg_name] = releases
        references = _field(data, "References") or []
        if not isinstance(references, list):
            raise TypeError("references must be a JSON array")
        return cls(
            description=_field(data, "description") or "",
            candidate=_field(data, "Candidate") or "",
            priority=_field(data, "Priority") or "",
            patches=patches,
            references=list(references),
            public_date=_field(data, "PublicDate") or "",
        )


CustomPut = Callable[[Store, Any], None]


def severity_from_priority(priority: str) -> Severity:
    """Map an Ubuntu priority to a normalised severity."""
    return {
        "untriaged": Severity.UNKNOWN,
        "negligible": Severity.LOW,
        "low": Severity.LOW,
        "medium": Severity.MEDIUM,
        "high": Severity.HIGH,
        "critical": Severity.CRITICAL,
    }.get(priority, Severity.UNKNOWN)


def default_put(store: Store, cve: Any) -> None:
    """Save the advisories and detail of one Ubuntu CVE."""
    if not isinstance(cve, UbuntuCVE):
        raise TypeError("unknown type")

    for pkg_name, patch in cve.patches.items():
        for release, status in patch.items():
            if status.status not in TARGET_STATUSES:
                continue
            os_version = UBUNTU_RELEASES_MAPPING.get(release)
            if os_version is None:
                continue
            platform_name = PLATFORM_FORMAT.format(os_version)
            try:
                store.put_data_source(platform_name, SOURCE)
            except StoreError as exc:
                raise StoreError(f"failed to put data source: {exc}") from exc

            advisory = Advisory()
            if status.status == "released":
                advisory.fixed_version = status.note
            try:
                store.put_advisory_detail(cve.candidate, pkg_name, [platform_name], advisory)
            except StoreError as exc:
                raise StoreError(f"failed to save Ubuntu advisory: {exc}") from exc

            detail = VulnerabilityDetail(
                severity=severity_from_priority(cve.priority),
                references=list(cve.references),
                description=cve.description,
            )
            try:
                store.put_vulnerability_detail(cve.candidate, SOURCE.id, detail)
            except StoreError as exc:
                raise StoreError(f"failed to save Ubuntu vulnerability: {exc}") from exc

            try:
                store.put_vulnerability_id(cve.candidate)
            except StoreError as exc:
                raise StoreError(f"failed to save the vulnerability ID: {exc}") from exc


def _decode_cve(path: Path) -> UbuntuCVE:
    try:
        return UbuntuCVE.from_dict(json.loads(path.read_text(encoding="utf-8")))
    except (ValueError, TypeError, AttributeError) as exc:
        raise ValueError(f"failed to decode Ubuntu JSON: {exc}") from exc


class UbuntuSource:
    """Loads Ubuntu CVE Tracker entries into a store and reads advisories back."""

    def __init__(self, store: Store, put: CustomPut | None = None) -> None:
        self.store = store
        self._put = put if put is not None else default_put

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Read the CVE entries under directory/vuln-list/ubuntu and save them."""
        root = Path(directory, "vuln-list", UBUNTU_DIR)
        try:
            cves = [_decode_cve(path) for path in walk_files(root)]
        except ValueError as exc:
            raise ValueError(f"error in Ubuntu walk: {exc}") from exc

        logger.info("Saving Ubuntu DB")
        try:
            with self.store.batch_update():
                for cve in cves:
                    try:
                        self._put(self.store, cve)
                    except StoreError as exc:
                        raise StoreError(f"put error: {exc}") from exc
        except StoreError as exc:
            raise StoreError(f"error in Ubuntu save: {exc}") from exc

    def get(self, release: str, pkg_name: str) -> list[Advisory]:
        """Return the advisories of a package for one release."""
        bucket = PLATFORM_FORMAT.format(release)
        try:
            return self.store.get_advisories(bucket, pkg_name)
        except StoreError as exc:
            raise StoreError(f"failed to get Ubuntu advisories: {exc}") from exc