"""
Metadata records stored per product in the registry.

Records are written by the release pipeline as JSON objects and decoded here
into a typed structure. Decoding fails closed: a missing or mistyped required
field raises DataCorruptionError instead of leaking None into the catalog or
the proxy.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone

from .errors import DataCorruptionError

REQUIRED_FIELDS = {
    "meta_hash": str,
    "meta_size": int,
    "disk_hash": str,
    "disk_size": int,
    "combined_hash": str,
}

OPTIONAL_STRING_FIELDS = ("github_repo", "file_prefix", "source_url", "schematic_id")


@dataclass(frozen=True)
class MetadataRecord:
    """
    Facts about one published image variant.

    Attributes:
        meta_hash: SHA256 (hex) of the metadata tarball
        meta_size: Size of the metadata tarball in bytes
        disk_hash: SHA256 (hex) of the disk image
        disk_size: Size of the disk image in bytes
        combined_hash: SHA256 over metadata tarball + disk image, in that order
        creation_date: Seconds since the epoch, or None if the producer omitted it
        github_repo: Repository holding the metadata release assets
        file_prefix: Release asset filename prefix
        source_url: Explicit disk image origin URL
        schematic_id: Image factory schematic used to synthesize the disk URL
    """

    meta_hash: str
    meta_size: int
    disk_hash: str
    disk_size: int
    combined_hash: str
    creation_date: int | None = None
    github_repo: str | None = None
    file_prefix: str | None = None
    source_url: str | None = None
    schematic_id: str | None = None


def _check_type(value, expected):
    # bool is a subclass of int but never a valid size
    if expected is int and isinstance(value, bool):
        return False
    return isinstance(value, expected)


def decode_record(raw: str, key: str) -> MetadataRecord:
    """
    Decode a registry value into a MetadataRecord.

    Args:
        raw: JSON text as stored in the registry
        key: Registry key the value was read from (used in diagnostics)

    Returns:
        MetadataRecord

    Raises:
        DataCorruptionError: value is not a JSON object, a required field is
            missing or has the wrong type, or an optional field is mistyped
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise DataCorruptionError(f"Invalid metadata format for {key}", key=key) from e

    if not isinstance(data, dict):
        raise DataCorruptionError(f"Invalid metadata format for {key}: expected an object", key=key)

    fields = {}
    for name, expected in REQUIRED_FIELDS.items():
        if name not in data:
            raise DataCorruptionError(f"Invalid metadata format for {key}: missing '{name}'", key=key)
        if not _check_type(data[name], expected):
            raise DataCorruptionError(
                f"Invalid metadata format for {key}: '{name}' must be {expected.__name__}", key=key
            )
        fields[name] = data[name]

    creation_date = data.get("creation_date")
    if creation_date is not None:
        # The release scripts have written both numbers and numeric strings
        try:
            if isinstance(creation_date, bool):
                raise ValueError(creation_date)
            fields["creation_date"] = int(creation_date)
            # Milliseconds or garbage overflow what a version key can express
            datetime.fromtimestamp(fields["creation_date"], tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError) as e:
            raise DataCorruptionError(
                f"Invalid metadata format for {key}: 'creation_date' must be epoch seconds", key=key
            ) from e

    for name in OPTIONAL_STRING_FIELDS:
        value = data.get(name)
        if value is None or value == "":
            continue
        if not isinstance(value, str):
            raise DataCorruptionError(f"Invalid metadata format for {key}: '{name}' must be str", key=key)
        fields[name] = value

    return MetadataRecord(**fields)
