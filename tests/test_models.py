from datetime import datetime, timezone

import pytest

from vulnfeeds.models import (
    ROCKY,
    Advisories,
    Advisory,
    DataSource,
    Severity,
    VulnerabilityDetail,
)

ROCKY_SOURCE = DataSource(
    id=ROCKY,
    name="Rocky Linux updateinfo",
    url="https://download.rockylinux.org/pub/rocky/",
)


def test_severity_ordering():
    parsed = [
        VulnerabilityDetail.from_dict({"Severity": value}).severity
        for value in (4, 1, 0, 3, 2)
    ]
    assert sorted(parsed) == [
        Severity.UNKNOWN,
        Severity.LOW,
        Severity.MEDIUM,
        Severity.HIGH,
        Severity.CRITICAL,
    ]


def test_severity_string():
    detail = VulnerabilityDetail.from_dict({"Severity": 2})
    assert str(detail.severity) == "MEDIUM"


def test_data_source_round_trip():
    assert DataSource.from_dict(ROCKY_SOURCE.to_dict()) == ROCKY_SOURCE


def test_data_source_dict_carries_values():
    data = ROCKY_SOURCE.to_dict()
    assert sorted(data.values()) == sorted([ROCKY_SOURCE.id, ROCKY_SOURCE.name, ROCKY_SOURCE.url])


def test_empty_advisory_serialises_to_nothing():
    assert Advisory().to_dict() == {}


def test_advisory_round_trip():
    advisory = Advisory(
        vulnerability_id="CVE-2022-0396",
        vendor_ids=["RLSA-2022:7643"],
        arches=["aarch64", "x86_64"],
        severity=Severity.HIGH,
        fixed_version="32:9.16.23-0.9.el8.1",
        data_source=ROCKY_SOURCE,
    )
    assert Advisory.from_dict(advisory.to_dict()) == advisory


def test_advisory_keeps_fixed_version():
    advisory = Advisory(fixed_version="5.6.0-lp151.4.3.1")
    assert Advisory.from_dict(advisory.to_dict()).fixed_version == "5.6.0-lp151.4.3.1"


def test_advisories_round_trip():
    advisories = Advisories(
        fixed_version="32:9.11.26-4.el8_4",
        entries=[
            Advisory(
                fixed_version="32:9.11.26-4.el8_4",
                arches=["aarch64", "i686", "x86_64"],
                vendor_ids=["RLSA-2021:1989"],
            ),
            Advisory(fixed_version="32:7.11.26-4.el8_4", arches=["x86_64"]),
        ],
    )
    restored = Advisories.from_dict(advisories.to_dict())
    assert restored == advisories
    assert [entry.fixed_version for entry in restored.entries] == [
        "32:9.11.26-4.el8_4",
        "32:7.11.26-4.el8_4",
    ]


def test_advisories_custom_survives():
    advisories = Advisories(fixed_version="1:1.12.20-7.el9_1", custom={"nested": [1, 2]})
    assert Advisories.from_dict(advisories.to_dict()).custom == {"nested": [1, 2]}


def test_vulnerability_detail_round_trip():
    detail = VulnerabilityDetail(
        cvss_score=4.2,
        cvss_vector="AV:N/AC:M/Au:N/C:N/I:P/A:N",
        cvss_score_v3=5.6,
        cvss_vector_v3="CVSS:3.0/AV:A/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H",
        severity_v3=Severity.HIGH,
        cwe_ids=["CWE-125", "CWE-200"],
        last_modified_date=datetime(2020, 1, 1, 1, 2, 3, tzinfo=timezone.utc),
        published_date=datetime(2001, 1, 1, 1, 2, 3, tzinfo=timezone.utc),
    )
    assert VulnerabilityDetail.from_dict(detail.to_dict()) == detail


def test_vulnerability_detail_date_format():
    detail = VulnerabilityDetail(published_date=datetime(2001, 1, 1, 1, 2, 3, tzinfo=timezone.utc))
    assert detail.to_dict()["PublishedDate"] == "2001-01-01T01:02:03Z"


def test_vulnerability_detail_parses_nanosecond_dates():
    detail = VulnerabilityDetail.from_dict({"PublishedDate": "2001-01-01T01:02:03.123456789Z"})
    assert detail.published_date.replace(microsecond=0) == datetime(
        2001, 1, 1, 1, 2, 3, tzinfo=timezone.utc
    )
    assert detail.published_date.microsecond > 0


def test_vulnerability_detail_defaults_from_empty():
    assert VulnerabilityDetail.from_dict({}) == VulnerabilityDetail()


def test_vulnerability_detail_severity_from_int():
    detail = VulnerabilityDetail.from_dict({"Severity": 2, "SeverityV3": 4})
    assert detail.severity is Severity.MEDIUM
    assert detail.severity_v3 is Severity.CRITICAL


def test_vulnerability_detail_rejects_bad_severity():
    with pytest.raises(ValueError):
        VulnerabilityDetail.from_dict({"Severity": 42})