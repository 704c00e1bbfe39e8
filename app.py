"""
Simplestreams image server for Incus/LXD.

Serves a simplestreams catalog generated from a key-value registry and
proxies image downloads from their origins, adding the Incus-Image-Hash and
Incus-Image-URL headers the client verifies.

Architecture:
    1. Client requests /streams/v1/index.json to discover products
    2. Client requests /streams/v1/images.json for versions, hashes and paths
    3. Client requests /images/<os>/<version>/<arch>/<variant>/<version>/<file>
    4. Server looks up the registry record and resolves the origin URL
    5. Server streams the origin response back with Incus headers

Endpoints:
    - GET /streams/v1/index.json - Simplestreams index
    - GET /streams/v1/images.json - Simplestreams products
    - GET/HEAD /images/... - Proxied artifact download

Environment Variables:
    LOG_LEVEL, FLASK_HOST, FLASK_PORT, GITHUB_ORG, DEFAULT_SCHEMATIC_ID,
    FACTORY_URL, UPSTREAM_CONNECT_TIMEOUT, STREAM_CHUNK_SIZE,
    REGISTRY_BACKEND, REGISTRY_FILE, CF_ACCOUNT_ID, CF_NAMESPACE_ID, CF_API_TOKEN

Example:
    $ REGISTRY_FILE=registry.json LOG_LEVEL=DEBUG python app.py
    $ incus remote add local-images http://localhost:8080 --protocol simplestreams
    $ incus launch local-images:talos/v1.12.0/amd64 talos --vm

See README.md for full documentation.
"""

import logging

from imagestreams.config import Config
from imagestreams.routes import create_app

config = Config()

# Configure logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# WSGI entry point (e.g. gunicorn app:app)
app = create_app(config)


def main():
    """Main entry point for the image server."""
    debug_mode = logger.getEffectiveLevel() == logging.DEBUG
    logger.info(f"Starting simplestreams image server on {config.FLASK_HOST}:{config.FLASK_PORT}")
    logger.info(f"Configuration: {config}")
    logger.info(f"Log level: {logging.getLevelName(logger.getEffectiveLevel())}")
    if debug_mode:
        logger.info("Flask debug mode enabled")
    app.run(host=config.FLASK_HOST, port=config.FLASK_PORT, debug=debug_mode)


if __name__ == "__main__":
    main()
