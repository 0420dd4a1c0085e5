# vulnfeeds

vulnfeeds reads security advisory feeds that are already on local disk under
a `vuln-list` directory tree. It decodes them and writes the advisories into
an in-memory, bucketed key/value store (`vulnfeeds.store.Store`). The same
source objects then answer which advisories affect a package on a release.

## Supported sources

| Source                 | Class            | `name()`                       | Read from                                   | Store bucket                                          |
|------------------------|------------------|--------------------------------|---------------------------------------------|-------------------------------------------------------|
| Rocky Linux updateinfo | `RockySource`    | `rocky`                        | `vuln-list/rocky/<ver>/<repo>/<arch>/...`   | `rocky <major>`                                       |
| SUSE CVRF              | `SuseCvrfSource` | `suse-cvrf` / `opensuse-cvrf`  | `vuln-list/cvrf/suse/suse` or `.../opensuse` | `SUSE Linux Enterprise <ver>`, `openSUSE Leap <ver>` |
| Ubuntu CVE Tracker     | `UbuntuSource`   | `ubuntu`                       | `vuln-list/ubuntu`                          | `ubuntu <version>`                                    |
| Wolfi Secdb            | `WolfiSource`    | `wolfi`                        | `vuln-list/wolfi`                           | `wolfi`                                               |

Every file under a source's directory is read as JSON. Empty files are
skipped. Rocky errata are kept only for the repos `BaseOS`, `AppStream` and
`extras` and the arches `x86_64` and `aarch64`. Modular packages are left out.
`SuseCvrfSource` takes a `Distribution` (`SUSE_ENTERPRISE_LINUX` or `OPENSUSE`).
`UbuntuSource` accepts an optional `put` callable that replaces `default_put`.

## Usage

```python
from vulnfeeds.store import Store
from vulnfeeds.registry import all_sources, find_source
from vulnfeeds.vulnerability import Normalizer

store = Store()
sources = all_sources(store)

# Load every feed from cache/vuln-list/...
for source in sources:
    source.update("cache")

# Query one source
rocky = find_source(sources, "rocky")
for advisory in rocky.get("8", "bind", "x86_64"):
    print(advisory.vulnerability_id, advisory.fixed_version)

# Merge the per-vendor details for one vulnerability
normalizer = Normalizer(store)
details = normalizer.get_details("CVE-2021-25215")
if details and not normalizer.is_rejected(details):
    vuln = normalizer.normalize(details)
    print(vuln.severity, vuln.title)
```

`find_source` raises `KeyError` for an unknown name. `update` raises
`FileNotFoundError` when the source's directory is missing. It raises
`ValueError` when a file cannot be decoded, for example "failed to decode
Rocky erratum". It raises `vulnfeeds.store.StoreError` when saving fails.
Each `update` runs inside `Store.batch_update()`, so a failed save leaves the
store unchanged.

`vulnfeeds.vulnerability` also provides `score_to_severity(score)` and
`normalize_pkg_name(ecosystem, pkg_name)`. The data types (`Severity`,
`DataSource`, `Advisory`, `Advisories`, `VulnerabilityDetail`, `CVSS`,
`Vulnerability`) live in `vulnfeeds.models`.

## Store layout

The store holds these nested buckets. Values are stored as JSON text.

- `data-source/<platform>`: the `DataSource` that produced the platform's data.
- `advisory-detail/<vuln id>/<platform>/<package>`: the advisory itself.
- `vulnerability-detail/<vuln id>/<source id>`: a `VulnerabilityDetail`.
- `vulnerability-id/<vuln id>`: an empty marker.

`Store.get(keys)` returns the decoded value at a key path.
`Store.has_bucket(keys)` checks that a bucket exists. `Store.load_fixture(data)`
merges a plain nested dict: mappings become buckets, strings are stored as
raw JSON, and other values are JSON-encoded.

## What it does not do

- It does not download feeds. The `vuln-list` tree must already be on disk.
- The store lives in memory only. Nothing is written to or read from a database file.
- There is no command-line program. The package is used as a library.
- Only the four sources above are included.

## Development

```
pip install -e .[test]
pytest
```