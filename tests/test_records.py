import json

import pytest

from imagestreams.errors import DataCorruptionError
from imagestreams.records import MetadataRecord, decode_record

from conftest import CREATION_DATE, make_record

KEY = "product:talos:v1.12.0:amd64:default"


def test_decode_record():
    record = decode_record(json.dumps(make_record(github_repo="talos-incus")), KEY)
    assert isinstance(record, MetadataRecord)
    assert record.meta_size == 1024
    assert record.disk_size == 207000000
    assert record.creation_date == 1766716800
    assert record.github_repo == "talos-incus"
    assert record.source_url is None
    assert record.schematic_id is None


def test_decode_record_accepts_string_creation_date():
    record = decode_record(json.dumps(make_record(creation_date="1766716800")), KEY)
    assert record.creation_date == 1766716800


def test_decode_record_without_creation_date():
    data = make_record()
    del data["creation_date"]
    assert decode_record(json.dumps(data), KEY).creation_date is None


def test_decode_record_ignores_unknown_fields():
    record = decode_record(json.dumps(make_record(signed_by="cosign")), KEY)
    assert record.meta_hash == "a" * 64


def test_decode_record_treats_empty_optional_as_absent():
    record = decode_record(json.dumps(make_record(source_url="")), KEY)
    assert record.source_url is None


@pytest.mark.parametrize("field", ["meta_hash", "meta_size", "disk_hash", "disk_size", "combined_hash"])
def test_decode_record_missing_required_field(field):
    data = make_record()
    del data[field]
    with pytest.raises(DataCorruptionError) as excinfo:
        decode_record(json.dumps(data), KEY)
    assert excinfo.value.code == 500
    assert excinfo.value.key == KEY
    assert field in excinfo.value.description


@pytest.mark.parametrize(
    "overrides",
    [
        {"meta_size": "1024"},
        {"disk_size": True},
        {"meta_hash": 123},
        {"creation_date": "yesterday"},
        {"source_url": ["https://example.com"]},
    ],
)
def test_decode_record_wrong_types(overrides):
    with pytest.raises(DataCorruptionError):
        decode_record(json.dumps(make_record(**overrides)), KEY)


@pytest.mark.parametrize("raw", ["not json", "[1, 2]", '"string"', "null"])
def test_decode_record_not_an_object(raw):
    with pytest.raises(DataCorruptionError) as excinfo:
        decode_record(raw, KEY)
    assert KEY in excinfo.value.description


@pytest.mark.parametrize("creation_date", [CREATION_DATE * 1000, 10**20, -(10**20)])
def test_decode_record_rejects_unrepresentable_creation_date(creation_date):
    with pytest.raises(DataCorruptionError) as excinfo:
        decode_record(json.dumps(make_record(creation_date=creation_date)), KEY)
    assert "creation_date" in excinfo.value.description
