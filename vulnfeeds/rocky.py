"""Rocky Linux updateinfo errata as a vulnerability feed."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from vulnfeeds.models import (
    ROCKY,
    Advisories,
    Advisory,
    DataSource,
    Severity,
    VulnerabilityDetail,
)
from vulnfeeds.store import Store, StoreError, walk_files

logger = logging.getLogger(__name__)

ROCKY_DIR = "rocky"
PLATFORM_FORMAT = "rocky {}"
TARGET_REPOS = ("BaseOS", "AppStream", "extras")
TARGET_ARCHES = ("x86_64", "aarch64")
MODULAR_MARKER = ".module+el"

SOURCE = DataSource(
    id=ROCKY,
    name="Rocky Linux updateinfo",
    url="https://download.rockylinux.org/pub/rocky/",
)


@dataclass
class Package:
    """A package fixed by an erratum."""

    name: str = ""
    epoch: str = ""
    version: str = ""
    release: str = ""
    arch: str = ""
    filename: str = ""


@dataclass
class Reference:
    """A link attached to an erratum."""

    href: str = ""
    id: str = ""
    title: str = ""
    type: str = ""


@dataclass
class RLSA:
    """One Rocky Linux security advisory."""

    id: str = ""
    title: str = ""
    severity: str = ""
    description: str = ""
    packages: list[Package] = field(default_factory=list)
    references: list[Reference] = field(default_factory=list)
    cve_ids: list[str] = field(default_factory=list)
    issued_date: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RLSA:
        if not isinstance(data, Mapping):
            raise TypeError("an erratum must be a JSON object")
        issued = data.get("issued") or {}
        return cls(
            id=data.get("id", ""),
            title=data.get("title", ""),
            severity=data.get("severity", ""),
            description=data.get("description", ""),
            packages=[
                Package(
                    name=pkg.get("name", ""),
                    epoch=pkg.get("epoch", ""),
                    version=pkg.get("version", ""),
                    release=pkg.get("release", ""),
                    arch=pkg.get("arch", ""),
                    filename=pkg.get("filename", ""),
                )
                for pkg in data.get("packages") or []
            ],
            references=[
                Reference(
                    href=ref.get("href", ""),
                    id=ref.get("id", ""),
                    title=ref.get("title", ""),
                    type=ref.get("type", ""),
                )
                for ref in data.get("references") or []
            ],
            cve_ids=list(data.get("cveids") or []),
            issued_date=issued.get("date", ""),
        )


@dataclass
class PutInput:
    """Everything saved for one CVE on one platform."""

    platform_name: str = ""
    cve_id: str = ""
    vuln: VulnerabilityDetail = field(default_factory=VulnerabilityDetail)
    advisories: dict[str, Advisories] = field(default_factory=dict)
    erratum: RLSA | None = None


def construct_version(epoch: str, version: str, release: str) -> str:
    """Join epoch, version and release as epoch:version-release."""
    text = f"{epoch}:" if epoch not in ("", "0") else ""
    text += version
    if release:
        text += f"-{release}"
    return text


def generalize_severity(severity: str) -> Severity:
    """Map a Rocky severity word to a normalised severity."""
    return {
        "low": Severity.LOW,
        "moderate": Severity.MEDIUM,
        "important": Severity.HIGH,
        "critical": Severity.CRITICAL,
    }.get(severity.lower(), Severity.UNKNOWN)


def fixed_version(prev_version: str, new_version: str, arch: str) -> str:
    """Take the new version only for x86_64 and noarch packages."""
    if arch in ("x86_64", "noarch"):
        return new_version
    return prev_version


def _decode_erratum(path: Path) -> RLSA:
    try:
        return RLSA.from_dict(json.loads(path.read_text(encoding="utf-8")))
    except (ValueError, TypeError, AttributeError) as exc:
        raise ValueError(f"failed to decode Rocky erratum: {exc}") from exc


class RockySource:
    """Loads Rocky Linux errata into a store and reads advisories back."""

    def __init__(self, store: Store) -> None:
        self.store = store

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Read the errata under directory/vuln-list/rocky and save them."""
        root = Path(directory, "vuln-list", ROCKY_DIR)
        errata = self._parse(root)
        try:
            self._save(errata)
        except StoreError as exc:
            raise StoreError(f"error in Rocky save: {exc}") from exc

    def _parse(self, root: Path) -> dict[str, list[RLSA]]:
        errata: dict[str, list[RLSA]] = {}
        try:
            for path in walk_files(root):
                erratum = _decode_erratum(path)
                parts = path.relative_to(root).parts
                if len(parts) != 5:
                    logger.warning("Invalid path: %s", path)
                    continue
                # Errata may sit under a minor version such as 8.5.
                major_ver = parts[0].split(".", 1)[0]
                repo, arch = parts[1], parts[2]
                if repo not in TARGET_REPOS:
                    logger.warning("Unsupported Rocky repo: %s", repo)
                    continue
                if arch not in TARGET_ARCHES:
                    logger.warning("Unsupported Rocky arch: %s", arch)
                    continue
                errata.setdefault(major_ver, []).append(erratum)
        except ValueError as exc:
            raise ValueError(f"error in Rocky walk: {exc}") from exc
        return errata

    def _save(self, errata_by_version: Mapping[str, list[RLSA]]) -> None:
        with self.store.batch_update():
            for major_ver, errata in errata_by_version.items():
                platform_name = PLATFORM_FORMAT.format(major_ver)
                self.store.put_data_source(platform_name, SOURCE)
                try:
                    self._commit(platform_name, errata)
                except StoreError as exc:
                    raise StoreError(f"error in save Rocky {major_ver}: {exc}") from exc

    def _commit(self, platform_name: str, errata: list[RLSA]) -> None:
        saved: dict[str, PutInput] = {}
        for erratum in errata:
            for cve_id in erratum.cve_ids:
                put_input = saved.get(cve_id)
                if put_input is None:
                    put_input = PutInput()
                for pkg in erratum.packages:
                    self._add_package(put_input, erratum, pkg)
                if not put_input.advisories:
                    continue
                put_input.platform_name = platform_name
                put_input.cve_id = cve_id
                put_input.vuln = VulnerabilityDetail(
                    severity=generalize_severity(erratum.severity),
                    references=[ref.href for ref in erratum.references],
                    title=erratum.title,
                    description=erratum.description,
                )
                put_input.erratum = erratum
                saved[cve_id] = put_input

        for put_input in saved.values():
            try:
                self.put(put_input)
            except StoreError as exc:
                raise StoreError(f"db put error: {exc}") from exc

    @staticmethod
    def _add_package(put_input: PutInput, erratum: RLSA, pkg: Package) -> None:
        # Modular packages are left out: their errata are incomplete upstream.
        if MODULAR_MARKER in pkg.release:
            return
        version = construct_version(pkg.epoch, pkg.version, pkg.release)
        advisories = put_input.advisories.get(pkg.name)
        if advisories is None:
            # Non-x86_64 arches keep 0.0.0 so that older readers see no false positives.
            put_input.advisories[pkg.name] = Advisories(
                fixed_version=fixed_version("0.0.0", version, pkg.arch),
                entries=[Advisory(fixed_version=version, arches=[pkg.arch], vendor_ids=[erratum.id])],
            )
            return

        advisories.fixed_version = fixed_version(advisories.fixed_version, version, pkg.arch)
        existing = next((e for e in advisories.entries if e.fixed_version == version), None)
        if existing is None:
            advisories.entries.append(
                Advisory(fixed_version=version, arches=[pkg.arch], vendor_ids=[erratum.id])
            )
            return
        if pkg.arch not in existing.arches:
            existing.arches.append(pkg.arch)
        if erratum.id not in existing.vendor_ids:
            existing.vendor_ids.append(erratum.id)

    def put(self, put_input: PutInput) -> None:
        """Save the vulnerability detail and advisories of one CVE."""
        try:
            self.store.put_vulnerability_detail(put_input.cve_id, SOURCE.id, put_input.vuln)
        except StoreError as exc:
            raise StoreError(f"failed to save Rocky vulnerability: {exc}") from exc
        try:
            self.store.put_vulnerability_id(put_input.cve_id)
        except StoreError as exc:
            raise StoreError(f"failed to save the vulnerability ID: {exc}") from exc

        for pkg_name, advisories in put_input.advisories.items():
            for entry in advisories.entries:
                entry.arches.sort()
                entry.vendor_ids.sort()
            try:
                self.store.put_advisory_detail(
                    put_input.cve_id, pkg_name, [put_input.platform_name], advisories
                )
            except StoreError as exc:
                raise StoreError(f"failed to save Rocky advisory: {exc}") from exc

    def get(self, release: str, pkg_name: str, arch: str) -> list[Advisory]:
        """Return the advisories of a package for one release and arch."""
        bucket = PLATFORM_FORMAT.format(release)
        try:
            raw = self.store.for_each_advisory([bucket], pkg_name)
        except StoreError as exc:
            raise StoreError(f"unable to iterate advisories: {exc}") from exc

        found: list[Advisory] = []
        for vuln_id, (source, content) in raw.items():
            try:
                data = json.loads(content)
                if not isinstance(data, dict):
                    raise ValueError("expected a JSON object")
                advisories = Advisories.from_dict(data)
            except (ValueError, TypeError, AttributeError) as exc:
                raise StoreError(f"failed to unmarshal advisory JSON: {exc}") from exc

            # Older databases hold only a fixed version and custom fields.
            if not advisories.entries:
                found.append(
                    Advisory(
                        vulnerability_id=vuln_id,
                        fixed_version=advisories.fixed_version,
                        data_source=source,
                        custom=advisories.custom,
                    )
                )
                continue

            for entry in advisories.entries:
                if arch not in entry.arches:
                    continue
                entry.vulnerability_id = vuln_id
                entry.data_source = source
                found.append(entry)
        return found