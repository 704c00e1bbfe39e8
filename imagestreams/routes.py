"""
Flask application and simplestreams endpoints.

Routes:
    GET /streams/v1/index.json   -> CatalogBuilder.build_index
    GET /streams/v1/images.json  -> CatalogBuilder.build_images
    GET /images/<path>           -> DownloadProxy.handle_download
    anything else                -> 404 Not Found
"""

import logging

from flask import Flask, Response, request
from werkzeug.exceptions import HTTPException

from .catalog import IMAGES_PATH, INDEX_PATH, CatalogBuilder, render
from .codec import DOWNLOAD_ROOT
from .config import Config
from .errors import DataCorruptionError, ImageStreamsError, RegistryError, UpstreamError
from .proxy import CORS_HEADER, DownloadProxy
from .store import create_store

logger = logging.getLogger(__name__)

SKIPPED_HEADER = "X-Catalog-Skipped-Entries"


def catalog_response(result) -> Response:
    """Render a CatalogResult as compact JSON with the skipped-entry count."""
    resp = Response(render(result.document), status=200, content_type="application/json")
    resp.headers[CORS_HEADER] = "*"
    resp.headers[SKIPPED_HEADER] = str(result.skipped)
    return resp


def create_app(config=None, store=None, http_client=None) -> Flask:
    """
    Create the image server application.

    Args:
        config: Config instance (read from the environment if omitted)
        store: RegistryStore (built from config.REGISTRY_BACKEND if omitted)
        http_client: httpx.Client for origin fetches (created if omitted)

    Returns:
        Flask application with catalog and download routes registered

    Example:
        >>> app = create_app(Config(REGISTRY_BACKEND="memory"))
        >>> app.test_client().get("/streams/v1/index.json").status_code
        200
    """
    if config is None:
        config = Config()
    if store is None:
        store = create_store(config)

    app = Flask(__name__)
    catalog = CatalogBuilder(store)
    proxy = DownloadProxy(config, store, client=http_client)
    app.extensions["imagestreams"] = {"config": config, "catalog": catalog, "proxy": proxy}

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        """
        Render HTTP errors as short plain-text diagnostics.

        Producer bugs and upstream failures are logged at ERROR so they stand
        out from client mistakes.
        """
        if isinstance(error, DataCorruptionError):
            logger.error(f"Data corruption ({error.key}): {error.description}")
        elif isinstance(error, (RegistryError, UpstreamError)):
            logger.error(f"{error.__class__.__name__} on {request.path}: {error.description}")
        else:
            logger.info(f"HTTP {error.code} on {request.path}: {error.description}")

        # Routing errors (unknown path, wrong method) carry no useful detail
        description = error.description if isinstance(error, ImageStreamsError) else error.name
        resp = Response(description, status=error.code, content_type="text/plain")
        resp.headers[CORS_HEADER] = "*"
        return resp

    @app.route(f"/{INDEX_PATH}")
    def index():
        """
        Simplestreams index.

        Response Format:
            {"format":"index:1.0","index":{"images":{"datatype":"image-downloads",
             "path":"streams/v1/images.json","format":"products:1.0","products":[...]}}}
        """
        result = catalog.build_index()
        logger.info(f"Index served: {len(result.document['index']['images']['products'])} products")
        return catalog_response(result)

    @app.route(f"/{IMAGES_PATH}")
    def images():
        """
        Simplestreams product metadata.

        Response Format:
            {"format":"products:1.0","content_id":"images","datatype":"image-downloads",
             "products":{"<os>:<version>:<arch>:<variant>":{..., "versions":{...}}}}
        """
        result = catalog.build_images()
        if result.skipped:
            logger.warning(f"Images served with {result.skipped} skipped registry entries")
        logger.info(f"Images served: {len(result.document['products'])} products")
        return catalog_response(result)

    @app.route(f"/{DOWNLOAD_ROOT}/<path:subpath>", methods=["GET", "HEAD"])
    def download(subpath):
        """
        Artifact download through the proxy.

        Path Format:
            /images/<os>/<version>/<arch>/<variant>/<YYYYMMDD_HH:MM>/<filename>

        Raises:
            400: Malformed path or unknown filename
            404: No registry record for the product
            500: Registry record is corrupt
            *: Origin status mirrored on upstream failure
        """
        logger.info(f"Download requested: {request.path}, method={request.method}")
        return proxy.handle_download(request.path, request.base_url, method=request.method)

    return app
