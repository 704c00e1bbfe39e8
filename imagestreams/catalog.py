"""
Simplestreams catalog builder.

Turns the registry contents into the two documents an Incus/LXD client reads
before downloading anything:

    streams/v1/index.json   lists the products published in images.json
    streams/v1/images.json  full product metadata: versions, items, hashes

Malformed registry entries are dropped (and counted) rather than failing the
whole document, so one bad record cannot take the catalog down.
"""

import json
import logging
from collections import namedtuple

from .codec import ArtifactFile, download_path, normalize_arch, parse_registry_key, version_key
from .errors import DataCorruptionError
from .records import decode_record
from .store import read_product_keys

logger = logging.getLogger(__name__)

INDEX_PATH = "streams/v1/index.json"
IMAGES_PATH = "streams/v1/images.json"

INDEX_FORMAT = "index:1.0"
PRODUCTS_FORMAT = "products:1.0"
DATATYPE = "image-downloads"
CONTENT_ID = "images"

DISK_FTYPE = "disk-kvm.img"
# Incus names the combined hash after the ftype of the disk it is paired with
COMBINED_HASH_FIELD = "combined_" + DISK_FTYPE.replace(".", "-") + "_sha256"

CatalogResult = namedtuple("CatalogResult", ["document", "skipped"])


def published_product(key):
    """
    Parse a registry key into the coordinates published in the catalog.

    The architecture is canonicalized so catalog paths resolve through the
    download proxy and clients can match the host architecture. Records are
    still read under the original registry key.

    Returns:
        ProductKey, or None if the key is malformed
    """
    product = parse_registry_key(key)
    if product is None:
        return None
    return product._replace(arch=normalize_arch(product.arch))


def render(document) -> bytes:
    """
    Serialize a catalog document as compact JSON, preserving key order.

    Reference simplestreams servers emit compact JSON in insertion order;
    some clients compare documents byte for byte.
    """
    return json.dumps(document, separators=(",", ":")).encode("utf-8")


def _aliases(product):
    full = f"{product.os}/{product.version}/{product.arch}/{product.variant}"
    short = f"{product.os}/{product.version}/{product.arch}"
    forms = [full, short]
    if product.variant == "default":
        forms.append(f"{product.os}/{product.version}")
    return ",".join(forms)


def _metadata_item(artifact, path, record):
    return {
        "ftype": artifact.filename,
        "sha256": record.meta_hash,
        "size": record.meta_size,
        "path": path,
        COMBINED_HASH_FIELD: record.combined_hash,
    }


def build_items(product, build, record) -> dict:
    """
    Build the ``items`` map for one version of a product.

    Args:
        product: ProductKey of the image
        build: Version key, e.g. "20251226_00:00"
        record: MetadataRecord with hashes and sizes

    Returns:
        Ordered dict: metadata tarball, disk image, then the LXD-compatible
        alias of the metadata tarball.
    """

    def path(artifact):
        return download_path(*product, build, artifact.filename)

    return {
        ArtifactFile.INCUS.filename: _metadata_item(ArtifactFile.INCUS, path(ArtifactFile.INCUS), record),
        ArtifactFile.DISK_QCOW2.filename: {
            "ftype": DISK_FTYPE,
            "sha256": record.disk_hash,
            "size": record.disk_size,
            "path": path(ArtifactFile.DISK_QCOW2),
        },
        ArtifactFile.LXD.filename: _metadata_item(ArtifactFile.LXD, path(ArtifactFile.LXD), record),
    }


class CatalogBuilder:
    """
    Builds simplestreams documents from a registry store.

    Stateless apart from the store reference: every call re-reads the
    registry, so a caching layer can be put in front without changing
    results beyond their freshness.

    Example:
        >>> builder = CatalogBuilder(MemoryStore({...}))
        >>> result = builder.build_index()
        >>> result.document["index"]["images"]["products"]
        ['talos:v1.12.0:amd64:default']
    """

    def __init__(self, store):
        self.store = store

    def build_index(self) -> CatalogResult:
        """
        Build index.json from the product list alone (one registry read).

        Returns:
            CatalogResult(document, skipped) where ``skipped`` counts list
            entries that are not valid registry keys.
        """
        products = []
        seen = set()
        skipped = 0
        for key in read_product_keys(self.store):
            product = published_product(key)
            if product is None:
                logger.warning(f"Skipping malformed product key: {key!r}")
                skipped += 1
                continue
            if product.wire_key in seen:
                continue
            seen.add(product.wire_key)
            products.append(product.wire_key)

        document = {
            "format": INDEX_FORMAT,
            "index": {
                "images": {
                    "datatype": DATATYPE,
                    "path": IMAGES_PATH,
                    "format": PRODUCTS_FORMAT,
                    "products": products,
                },
            },
        }
        logger.debug(f"Index built: {len(products)} products, {skipped} skipped")
        return CatalogResult(document, skipped)

    def build_images(self) -> CatalogResult:
        """
        Build images.json, reading one metadata record per product.

        Entries whose key is malformed, whose record is missing, or whose
        record does not decode are skipped and counted.

        Returns:
            CatalogResult(document, skipped)
        """
        products = {}
        seen = set()
        skipped = 0
        for key in read_product_keys(self.store):
            product = published_product(key)
            if product is None:
                logger.warning(f"Skipping malformed product key: {key!r}")
                skipped += 1
                continue
            if key in seen:
                continue
            seen.add(key)

            raw = self.store.get(key)
            if raw is None:
                logger.warning(f"Skipping {key}: listed but no metadata record")
                skipped += 1
                continue
            try:
                record = decode_record(raw, key)
            except DataCorruptionError as e:
                logger.warning(f"Skipping {key}: {e.description}")
                skipped += 1
                continue

            entry = products.get(product.wire_key)
            if entry is None:
                entry = products[product.wire_key] = {
                    "aliases": _aliases(product),
                    "arch": product.arch,
                    "os": product.os.capitalize(),
                    "release": product.version,
                    "release_title": product.version,
                    "requirements": {},
                    "variant": product.variant,
                    "versions": {},
                }

            build = version_key(record.creation_date)
            entry["versions"][build] = {"items": build_items(product, build, record)}

        document = {
            "format": PRODUCTS_FORMAT,
            "content_id": CONTENT_ID,
            "datatype": DATATYPE,
            "products": products,
        }
        logger.debug(f"Images built: {len(products)} products, {skipped} skipped")
        return CatalogResult(document, skipped)
