"""The set of vulnerability feeds available to a database build."""

from __future__ import annotations

from typing import Iterable, Protocol

from vulnfeeds.rocky import RockySource
from vulnfeeds.store import Store
from vulnfeeds.suse_cvrf import Distribution, SuseCvrfSource
from vulnfeeds.ubuntu import UbuntuSource
from vulnfeeds.wolfi import WolfiSource


class VulnSource(Protocol):
    """A feed that can name itself and load its data from a directory."""

    def name(self) -> str: ...

    def update(self, directory: str) -> None: ...


def all_sources(store: Store) -> list[VulnSource]:
    """Return every feed, in build order, all writing to the same store."""
    return [
        RockySource(store),
        SuseCvrfSource(store, Distribution.SUSE_ENTERPRISE_LINUX),
        SuseCvrfSource(store, Distribution.OPENSUSE),
        UbuntuSource(store),
        WolfiSource(store),
    ]


def find_source(sources: Iterable[VulnSource], name: str) -> VulnSource:
    """Return the feed with the given name; raise KeyError if there is none."""
    for source in sources:
        if source.name() == name:
            return source
    raise KeyError(name)