import pytest

from vulnfeeds.registry import all_sources, find_source
from vulnfeeds.store import Store
from vulnfeeds.suse_cvrf import Distribution, SuseCvrfSource
from vulnfeeds.ubuntu import UbuntuSource


def test_all_sources_order():
    names = [source.name() for source in all_sources(Store())]
    assert names == ["rocky", "suse-cvrf", "opensuse-cvrf", "ubuntu", "wolfi"]


def test_all_sources_share_store():
    store = Store()
    assert all(source.store is store for source in all_sources(store))


def test_names_are_unique():
    names = [source.name() for source in all_sources(Store())]
    assert len(set(names)) == len(names)


def test_find_source():
    sources = all_sources(Store())
    found = find_source(sources, "opensuse-cvrf")
    assert isinstance(found, SuseCvrfSource)
    assert found.dist is Distribution.OPENSUSE
    assert isinstance(find_source(sources, "ubuntu"), UbuntuSource)


def test_find_source_unknown():
    with pytest.raises(KeyError):
        find_source(all_sources(Store()), "nvd")