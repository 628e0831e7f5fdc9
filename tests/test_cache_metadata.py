"""Unit tests for cache metadata records and the metadata store."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from sdkcache.cache.errors import CacheMetadataError
from sdkcache.cache.keys import derive_cache_key
from sdkcache.cache.metadata import CacheMetadata, MetadataStore
from sdkcache.cache.policy import Expires, MustRevalidate, evaluate

URL = "https://example.test/a.bin"


@pytest.fixture
def store(tmp_path):
    """Create a metadata store in a temporary cache root."""
    return MetadataStore(tmp_path)


@pytest.fixture
def metadata():
    """Create representative metadata."""
    return CacheMetadata(
        source_url=URL,
        captured_at=datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc),
        raw_headers={
            "etag": ['"v1"'],
            "last-modified": ["Wed, 01 May 2024 10:00:00 GMT"],
            "cache-control": ["max-age=60"],
            "set-cookie": ["a=1", "b=2"],
        },
    )


class TestCacheMetadata:
    """Test metadata record behavior."""

    def test_from_response_groups_and_lowercases_headers(self):
        """Test conversion of header pairs into a multimap."""
        meta = CacheMetadata.from_response(
            URL,
            [("ETag", '"v1"'), ("Set-Cookie", "a=1"), ("set-cookie", "b=2")],
        )
        assert meta.raw_headers == {"etag": ['"v1"'], "set-cookie": ["a=1", "b=2"]}
        assert meta.source_url == URL
        assert meta.captured_at.tzinfo is not None

    def test_validators(self, metadata):
        """Test validator accessors."""
        assert metadata.etag == '"v1"'
        assert metadata.last_modified == "Wed, 01 May 2024 10:00:00 GMT"

    def test_missing_validators_are_none(self):
        """Test that absent headers give None validators."""
        meta = CacheMetadata.from_response(URL, [("Content-Length", "3")])
        assert meta.etag is None
        assert meta.last_modified is None
        assert meta.cache_control == MustRevalidate()

    def test_cache_control_relative_to_capture(self, metadata):
        """Test that max-age is measured from when the response was captured."""
        assert metadata.cache_control == Expires(
            metadata.captured_at + timedelta(seconds=60)
        )

    def test_to_dict_shape(self, metadata):
        """Test the serialized field names."""
        data = metadata.to_dict()
        assert set(data) == {"source", "timestamp", "response_headers"}
        assert data["source"] == URL
        assert data["response_headers"]["etag"] == ['"v1"']

    def test_from_dict_naive_timestamp(self):
        """Test that timezone-naive timestamps are treated as UTC."""
        meta = CacheMetadata.from_dict(
            {
                "source": URL,
                "timestamp": "2024-05-01T12:00:00",
                "response_headers": {},
            }
        )
        assert meta.captured_at.tzinfo == timezone.utc

    def test_constructor_lowercases_header_names(self):
        """Test that directly built metadata finds mixed-case headers."""
        meta = CacheMetadata(
            URL,
            datetime(2024, 5, 1, tzinfo=timezone.utc),
            {"ETag": ['"v1"'], "Set-Cookie": ["a=1"], "set-cookie": ["b=2"]},
        )
        assert meta.etag == '"v1"'
        assert meta.raw_headers == {"etag": ['"v1"'], "set-cookie": ["a=1", "b=2"]}

    def test_constructor_naive_timestamp_is_utc(self):
        """Test that a naive capture time is usable by the evaluator."""
        meta = CacheMetadata(
            URL,
            datetime(2024, 5, 1, 12, 0, 0),
            {"etag": ['"v1"'], "cache-control": ["max-age=60"]},
        )
        assert meta.captured_at == datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

        later = datetime(2024, 5, 1, 13, 0, 0, tzinfo=timezone.utc)
        assert evaluate(meta, later).etag == '"v1"'
        assert evaluate(meta, meta.captured_at).is_empty

    @pytest.mark.parametrize(
        "record",
        [
            [],
            {"timestamp": "2024-05-01T12:00:00+00:00", "response_headers": {}},
            {"source": URL, "timestamp": "yesterday", "response_headers": {}},
            {"source": URL, "timestamp": "2024-05-01T12:00:00+00:00"},
            {"source": 5, "timestamp": "2024-05-01T12:00:00+00:00", "response_headers": {}},
            {
                "source": URL,
                "timestamp": "2024-05-01T12:00:00+00:00",
                "response_headers": {"etag": "v1"},
            },
        ],
    )
    def test_from_dict_rejects_invalid_records(self, record):
        """Test that structurally invalid records raise."""
        with pytest.raises(CacheMetadataError):
            CacheMetadata.from_dict(record)


class TestMetadataStore:
    """Test metadata persistence."""

    def test_load_missing_returns_none(self, store):
        """Test that an absent record is reported as None."""
        assert store.load(derive_cache_key(URL)) is None

    def test_round_trip(self, store, metadata):
        """Test that save then load returns an equal record."""
        key = derive_cache_key(URL)
        store.save(key, metadata)
        assert store.load(key) == metadata

    def test_round_trip_mixed_case_headers(self, store):
        """Test that records built with mixed-case names survive a round trip."""
        key = derive_cache_key(URL)
        meta = CacheMetadata(
            URL,
            datetime(2024, 5, 1, 12, 0, 0),
            {"ETag": ['"v1"'], "Last-Modified": ["Wed, 01 May 2024 10:00:00 GMT"]},
        )
        store.save(key, meta)
        assert store.load(key) == meta

    def test_save_creates_entry_dir(self, store, metadata, tmp_path):
        """Test that the entry directory is created on first write."""
        key = derive_cache_key(URL)
        store.save(key, metadata)
        assert (tmp_path / "http" / key / "metadata").is_file()

    def test_save_leaves_no_temp_file(self, store, metadata):
        """Test that the temporary file is renamed into place."""
        key = derive_cache_key(URL)
        store.save(key, metadata)
        assert [p.name for p in store.entry_dir(key).iterdir()] == ["metadata"]

    def test_save_overwrites(self, store, metadata):
        """Test that a second save replaces the first record."""
        key = derive_cache_key(URL)
        store.save(key, metadata)
        newer = CacheMetadata.from_response(URL, [("ETag", '"v2"')])
        store.save(key, newer)
        assert store.load(key).etag == '"v2"'

    def test_saved_file_is_json(self, store, metadata):
        """Test the on-disk format."""
        key = derive_cache_key(URL)
        store.save(key, metadata)
        data = json.loads(store.metadata_path(key).read_text())
        assert data["source"] == URL
        assert data["response_headers"]["set-cookie"] == ["a=1", "b=2"]

    def test_corrupt_record_raises(self, store):
        """Test that a corrupt record is an error, not a cache miss."""
        key = derive_cache_key(URL)
        store.ensure_entry_dir(key)
        store.metadata_path(key).write_text("{not json")
        with pytest.raises(CacheMetadataError):
            store.load(key)

    def test_truncated_record_raises(self, store):
        """Test that a record missing fields is an error."""
        key = derive_cache_key(URL)
        store.ensure_entry_dir(key)
        store.metadata_path(key).write_text(json.dumps({"source": URL}))
        with pytest.raises(CacheMetadataError):
            store.load(key)

    def test_paths(self, store, tmp_path):
        """Test data and metadata path layout."""
        key = derive_cache_key(URL)
        assert store.data_path(key) == tmp_path / "http" / key / "data"
        assert store.metadata_path(key) == tmp_path / "http" / key / "metadata"
