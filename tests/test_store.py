import pytest

from vulnfeeds.models import (
    ROCKY,
    Advisories,
    Advisory,
    DataSource,
    Severity,
    VulnerabilityDetail,
)
from vulnfeeds.store import Store, StoreError, walk_files

ROCKY_SOURCE = DataSource(
    id=ROCKY,
    name="Rocky Linux updateinfo",
    url="https://download.rockylinux.org/pub/rocky/",
)


@pytest.fixture
def store():
    return Store()


def test_data_source_is_stored_under_its_bucket(store):
    store.put_data_source("rocky 8", ROCKY_SOURCE)
    assert store.get(["data-source", "rocky 8"]) == ROCKY_SOURCE.to_dict()


def test_advisory_detail_layout(store):
    advisory = Advisories(
        fixed_version="32:9.11.26-4.el8_4",
        entries=[Advisory(fixed_version="32:9.11.26-4.el8_4", arches=["x86_64"])],
    )
    store.put_advisory_detail("CVE-2021-25215", "bind-export-libs", ["rocky 8"], advisory)
    assert store.has_bucket(["advisory-detail", "CVE-2021-25215", "rocky 8"])
    assert store.get(["advisory-detail", "CVE-2021-25215", "rocky 8", "bind-export-libs"]) == advisory.to_dict()


def test_vulnerability_id_value(store):
    store.put_vulnerability_id("CVE-2021-25215")
    assert store.get(["vulnerability-id", "CVE-2021-25215"]) == {}


def test_get_missing_key_raises(store):
    with pytest.raises(KeyError):
        store.get(["data-source", "rocky 9"])


def test_get_on_bucket_raises(store):
    store.put_vulnerability_id("CVE-2021-25215")
    with pytest.raises(KeyError):
        store.get(["vulnerability-id"])


def test_has_bucket_false_for_missing(store):
    store.put_advisory_detail("CVE-2020-1234", "xen", ["ubuntu 18.04"], Advisory(fixed_version="1.2.3"))
    assert not store.has_bucket(["advisory-detail", "CVE-2020-1234", "ubuntu 20.04"])


def test_get_advisories_with_data_source(store):
    store.put_data_source("rocky 8", ROCKY_SOURCE)
    store.put_advisory_detail(
        "CVE-2021-25215", "bind-export-libs", ["rocky 8"], Advisory(fixed_version="32:9.11.26-4.el8_4")
    )
    assert store.get_advisories("rocky 8", "bind-export-libs") == [
        Advisory(
            vulnerability_id="CVE-2021-25215",
            fixed_version="32:9.11.26-4.el8_4",
            data_source=ROCKY_SOURCE,
        )
    ]


def test_get_advisories_without_data_source(store):
    store.put_advisory_detail("CVE-2022-38126", "binutils", ["wolfi"], Advisory(fixed_version="2.39-r1"))
    result = store.get_advisories("wolfi", "binutils")
    assert result == [Advisory(vulnerability_id="CVE-2022-38126", fixed_version="2.39-r1")]


def test_get_advisories_none_found(store):
    store.put_advisory_detail("CVE-2022-38126", "binutils", ["wolfi"], Advisory(fixed_version="2.39-r1"))
    assert store.get_advisories("wolfi", "bind") == []
    assert Store().get_advisories("wolfi", "binutils") == []


def test_get_advisories_broken_json(store):
    store.load_fixture({"advisory-detail": {"CVE-2022-0396": {"openSUSE Leap 13.1": {"bind": "{broken"}}}})
    with pytest.raises(StoreError, match="failed to unmarshal advisory JSON"):
        store.get_advisories("openSUSE Leap 13.1", "bind")


def test_for_each_advisory_nested_buckets(store):
    store.put_data_source("rocky 9", ROCKY_SOURCE)
    first = Advisory(fixed_version="32:9.16.23-0.9.el8.1")
    second = Advisory(fixed_version="8.2102.0-7.el8_6.2")
    store.put_advisory_detail("CVE-2022-0396", "bind", ["rocky 9", "extra"], first)
    store.put_advisory_detail("CVE-2022-24903", "bind", ["rocky 9", "extra"], second)
    store.put_advisory_detail("CVE-2022-0000", "bind", ["rocky 9"], second)
    found = store.for_each_advisory(["rocky 9", "extra"], "bind")
    assert set(found) == {"CVE-2022-0396", "CVE-2022-24903"}
    source, content = found["CVE-2022-0396"]
    assert source == ROCKY_SOURCE
    assert Advisory.from_dict(__import_json(content)) == first


def __import_json(content):
    import json

    return json.loads(content)


def test_vulnerability_detail_round_trip(store):
    detail = VulnerabilityDetail(
        severity=Severity.HIGH,
        references=["https://access.redhat.com/hydra/rest/securitydata/cve/CVE-2021-25215.json"],
        title="Important: bind security update",
        description="For more information visit https://errata.rockylinux.org/RLSA-2021:1989",
    )
    store.put_vulnerability_detail("CVE-2021-25215", ROCKY, detail)
    assert store.get_vulnerability_detail("CVE-2021-25215") == {ROCKY: detail}


def test_vulnerability_detail_missing(store):
    assert store.get_vulnerability_detail("CVE-2020-9999") == {}


def test_vulnerability_detail_broken(store):
    store.load_fixture({"vulnerability-detail": {"CVE-2020-1234": {"nvd": "[1"}}})
    with pytest.raises(StoreError):
        store.get_vulnerability_detail("CVE-2020-1234")


def test_batch_update_commits(store):
    with store.batch_update() as tx:
        tx.put_vulnerability_id("CVE-2022-42010")
    assert store.get(["vulnerability-id", "CVE-2022-42010"]) == {}


def test_batch_update_rolls_back(store):
    store.put_vulnerability_id("CVE-2021-25215")
    with pytest.raises(RuntimeError):
        with store.batch_update():
            store.put_vulnerability_id("CVE-2022-42010")
            store.put_data_source("rocky 8", ROCKY_SOURCE)
            raise RuntimeError("boom")
    assert not store.has_bucket(["data-source"])
    with pytest.raises(KeyError):
        store.get(["vulnerability-id", "CVE-2022-42010"])
    assert store.get(["vulnerability-id", "CVE-2021-25215"]) == {}


def test_put_over_bucket_raises(store):
    store.put_advisory_detail("CVE-2020-1234", "xen", ["ubuntu 18.04"], Advisory(fixed_version="1.2.3"))
    with pytest.raises(StoreError):
        store.put_advisory_detail("CVE-2020-1234", "ubuntu 18.04", [], Advisory(fixed_version="1.2.3"))


def test_load_fixture_values(store):
    store.load_fixture({"data-source": {"rocky 9": ROCKY_SOURCE.to_dict()}})
    assert store.has_bucket(["data-source", "rocky 9"])
    store2 = Store()
    store2.load_fixture({"data-source": {"rocky 9": '{"ID": "rocky"}'}})
    assert store2.get(["data-source", "rocky 9"]) == {"ID": ROCKY}


def test_walk_files_order_and_skips_empty(tmp_path):
    (tmp_path / "a").mkdir()
    nested = tmp_path / "a" / "c.json"
    nested.write_text("{}")
    top = tmp_path / "b.json"
    top.write_text("{}")
    (tmp_path / "d.json").write_text("")
    assert list(walk_files(tmp_path)) == [nested, top]


def test_walk_files_single_file(tmp_path):
    target = tmp_path / "x.json"
    target.write_text("{}")
    assert list(walk_files(target)) == [target]


def test_walk_files_missing_root(tmp_path):
    with pytest.raises(FileNotFoundError):
        list(walk_files(tmp_path / "badPath"))