"""An in-memory bucketed key-value store for advisories, with file walking."""

from __future__ import annotations

import copy
import errno
import json
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Mapping, Sequence, TypeVar, Union

from vulnfeeds.models import Advisories, Advisory, DataSource, VulnerabilityDetail

logger = logging.getLogger(__name__)

ADVISORY_DETAIL_BUCKET = "advisory-detail"
VULNERABILITY_DETAIL_BUCKET = "vulnerability-detail"
VULNERABILITY_ID_BUCKET = "vulnerability-id"
DATA_SOURCE_BUCKET = "data-source"

_Model = TypeVar("_Model", Advisory, VulnerabilityDetail, DataSource)
_Node = Union[dict, str]


class StoreError(Exception):
    """Raised when the store cannot save or decode a value."""


def _descend(bucket: dict | None, path: Sequence[str]) -> dict | None:
    for name in path:
        if bucket is None:
            return None
        child = bucket.get(name)
        bucket = child if isinstance(child, dict) else None
    return bucket


def _decode(model: type[_Model], content: str, what: str) -> _Model:
    try:
        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        return model.from_dict(data)
    except (ValueError, TypeError, AttributeError) as exc:
        raise StoreError(f"failed to unmarshal {what} JSON: {exc}") from exc


class Store:
    """Nested buckets of JSON values, laid out as the vulnerability database expects.

    Buckets are dictionaries; values are JSON text.
    """

    def __init__(self) -> None:
        self._root: dict[str, _Node] = {}

    @contextmanager
    def batch_update(self) -> Iterator[Store]:
        """Group writes; if the block raises, every write in it is undone."""
        snapshot = copy.deepcopy(self._root)
        try:
            yield self
        except BaseException:
            self._root = snapshot
            raise

    def _create_bucket(self, path: Sequence[str]) -> dict:
        bucket = self._root
        for name in path:
            child = bucket.setdefault(name, {})
            if not isinstance(child, dict):
                raise StoreError(f"cannot create bucket {name!r}: a value has that key")
            bucket = child
        return bucket

    def _put(self, path: Sequence[str], key: str, value: Any) -> None:
        bucket = self._create_bucket(path)
        if isinstance(bucket.get(key), dict):
            raise StoreError(f"cannot put {key!r}: a bucket has that key")
        bucket[key] = json.dumps(value)

    def put_data_source(self, bucket: str, source: DataSource) -> None:
        self._put([DATA_SOURCE_BUCKET], bucket, source.to_dict())

    def put_advisory_detail(
        self,
        vuln_id: str,
        pkg_name: str,
        nested_buckets: Sequence[str],
        advisory: Advisory | Advisories,
    ) -> None:
        self._put([ADVISORY_DETAIL_BUCKET, vuln_id, *nested_buckets], pkg_name, advisory.to_dict())

    def put_vulnerability_detail(self, vuln_id: str, source: str, detail: VulnerabilityDetail) -> None:
        self._put([VULNERABILITY_DETAIL_BUCKET, vuln_id], source, detail.to_dict())

    def put_vulnerability_id(self, vuln_id: str) -> None:
        self._put([VULNERABILITY_ID_BUCKET], vuln_id, {})

    def _data_source(self, name: str) -> DataSource | None:
        sources = _descend(self._root, [DATA_SOURCE_BUCKET])
        content = sources.get(name) if sources is not None else None
        if not isinstance(content, str):
            return None
        return _decode(DataSource, content, "data source")

    def for_each_advisory(
        self, buckets: Sequence[str], pkg_name: str
    ) -> dict[str, tuple[DataSource | None, str]]:
        """Map each vulnerability ID to its data source and raw advisory JSON."""
        root = _descend(self._root, [ADVISORY_DETAIL_BUCKET])
        if root is None:
            return {}
        source = self._data_source(buckets[0]) if buckets else None
        found: dict[str, tuple[DataSource | None, str]] = {}
        for vuln_id, node in root.items():
            bucket = _descend(node if isinstance(node, dict) else None, buckets)
            content = bucket.get(pkg_name) if bucket is not None else None
            if isinstance(content, str):
                found[vuln_id] = (source, content)
        return found

    def get_advisories(self, bucket: str, pkg_name: str) -> list[Advisory]:
        advisories = []
        for vuln_id, (source, content) in self.for_each_advisory([bucket], pkg_name).items():
            advisory = _decode(Advisory, content, "advisory")
            advisory.vulnerability_id = vuln_id
            if source is not None and source != DataSource():
                advisory.data_source = source
            advisories.append(advisory)
        return advisories

    def get_vulnerability_detail(self, vuln_id: str) -> dict[str, VulnerabilityDetail]:
        bucket = _descend(self._root, [VULNERABILITY_DETAIL_BUCKET, vuln_id])
        if bucket is None:
            return {}
        return {
            source: _decode(VulnerabilityDetail, content, "vulnerability detail")
            for source, content in bucket.items()
            if isinstance(content, str)
        }

    def get(self, keys: Sequence[str]) -> Any:
        """Return the decoded JSON value at a key path; raise KeyError if absent."""
        if not keys:
            raise KeyError(())
        bucket = _descend(self._root, keys[:-1])
        content = bucket.get(keys[-1]) if bucket is not None else None
        if not isinstance(content, str):
            raise KeyError(tuple(keys))
        return json.loads(content)

    def has_bucket(self, keys: Sequence[str]) -> bool:
        return _descend(self._root, keys) is not None

    def load_fixture(self, data: Mapping[str, Any]) -> None:
        """Merge nested data: mappings become buckets, strings are stored as raw JSON."""
        with self.batch_update():
            self._merge(self._root, data)

    def _merge(self, bucket: dict, data: Mapping[str, Any]) -> None:
        for key, value in data.items():
            if isinstance(value, Mapping):
                child = bucket.setdefault(key, {})
                if not isinstance(child, dict):
                    raise StoreError(f"cannot create bucket {key!r}: a value has that key")
                self._merge(child, value)
            elif isinstance(bucket.get(key), dict):
                raise StoreError(f"cannot put {key!r}: a bucket has that key")
            else:
                bucket[key] = value if isinstance(value, str) else json.dumps(value)


def _walk(path: Path) -> Iterator[Path]:
    if path.is_dir():
        for child in sorted(path.iterdir(), key=lambda p: p.name):
            yield from _walk(child)
    elif path.is_file():
        if path.stat().st_size == 0:
            logger.warning("invalid size: %s", path)
            return
        yield path


def walk_files(root: str | os.PathLike[str]) -> Iterator[Path]:
    """Yield every non-empty regular file under root, in lexical order."""
    root_path = Path(root)
    if not root_path.exists():
        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(root_path))
    yield from _walk(root_path)