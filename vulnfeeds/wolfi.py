"""Wolfi security database as a vulnerability feed."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from vulnfeeds.models import WOLFI, Advisory, DataSource
from vulnfeeds.store import Store, StoreError, walk_files

WOLFI_DIR = "wolfi"
DISTRO_NAME = "wolfi"

SOURCE = DataSource(
    id=WOLFI,
    name="Wolfi Secdb",
    url="https://packages.wolfi.dev/os/security.json",
)


@dataclass
class WolfiAdvisory:
    """The security fixes recorded for one Wolfi package."""

    pkg_name: str = ""
    secfixes: dict[str, list[str]] = field(default_factory=dict)
    apkurl: str = ""
    archs: list[str] = field(default_factory=list)
    urlprefix: str = ""
    reponame: str = ""
    distroversion: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WolfiAdvisory:
        if not isinstance(data, Mapping):
            raise TypeError("an advisory must be a JSON object")
        secfixes = data.get("secfixes") or {}
        if not isinstance(secfixes, Mapping):
            raise TypeError("secfixes must be a JSON object")
        fixes: dict[str, list[str]] = {}
        for version, ids in secfixes.items():
            if ids is not None and not isinstance(ids, list):
                raise TypeError("secfixes entries must be JSON arrays")
            fixes[version] = list(ids or [])
        return cls(
            pkg_name=data.get("name") or "",
            secfixes=fixes,
            apkurl=data.get("apkurl") or "",
            archs=list(data.get("archs") or []),
            urlprefix=data.get("urlprefix") or "",
            reponame=data.get("reponame") or "",
            distroversion=data.get("distroversion") or "",
        )


def _decode_advisory(path: Path) -> WolfiAdvisory:
    try:
        return WolfiAdvisory.from_dict(json.loads(path.read_text(encoding="utf-8")))
    except (ValueError, TypeError, AttributeError) as exc:
        raise ValueError(f"failed to decode Wolfi advisory: {exc}") from exc


class WolfiSource:
    """Loads the Wolfi security database into a store and reads advisories back."""

    def __init__(self, store: Store) -> None:
        self.store = store

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Read the advisories under directory/vuln-list/wolfi and save them."""
        root = Path(directory, "vuln-list", WOLFI_DIR)
        try:
            advisories = [_decode_advisory(path) for path in walk_files(root)]
        except ValueError as exc:
            raise ValueError(f"error in Wolfi walk: {exc}") from exc

        try:
            with self.store.batch_update():
                for advisory in advisories:
                    try:
                        self.store.put_data_source(DISTRO_NAME, SOURCE)
                    except StoreError as exc:
                        raise StoreError(f"failed to put data source: {exc}") from exc
                    self._save_secfixes(DISTRO_NAME, advisory.pkg_name, advisory.secfixes)
        except StoreError as exc:
            raise StoreError(f"error in Wolfi save: {exc}") from exc

    def _save_secfixes(
        self, platform: str, pkg_name: str, secfixes: Mapping[str, list[str]]
    ) -> None:
        for fixed_version, vuln_ids in secfixes.items():
            advisory = Advisory(fixed_version=fixed_version)
            for vuln_id in vuln_ids:
                # An entry may carry remarks, e.g. "CVE-2017-2616 (+ regression fix)".
                for word in vuln_id.split():
                    cve_id = word.replace("CVE_", "CVE-")
                    if not cve_id.startswith("CVE-"):
                        continue
                    try:
                        self.store.put_advisory_detail(cve_id, pkg_name, [platform], advisory)
                    except StoreError as exc:
                        raise StoreError(f"failed to save Wolfi advisory: {exc}") from exc
                    try:
                        self.store.put_vulnerability_id(cve_id)
                    except StoreError as exc:
                        raise StoreError(f"failed to save the vulnerability ID: {exc}") from exc

    def get(self, release: str, pkg_name: str) -> list[Advisory]:
        """Return the advisories of a package; Wolfi has no releases."""
        try:
            return self.store.get_advisories(DISTRO_NAME, pkg_name)
        except StoreError as exc:
            raise StoreError(f"failed to get Wolfi advisories: {exc}") from exc