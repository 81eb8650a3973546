"""
Entry point: serves the storage API with uvicorn.
"""

import logging
import os
import sys
from pathlib import Path

import uvicorn

from .api import create_app
from .config import EnvironmentLoader
from .config.constants import DEFAULT_TOKENS_PATH
from .storage import CallbackAuthorizationPrompt, SecureTokenStore, create_backends
from .storage.transport import HttpTransport


def setup_logging(level: str) -> None:
    """Log to stdout, and to a file when the data directory is writable."""
    log_handlers = [logging.StreamHandler(sys.stdout)]
    try:
        log_path = Path("data/vaultsync.log")
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_handlers.append(logging.FileHandler(str(log_path)))
    except OSError:
        # File logging not available, use stdout only
        pass

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=log_handlers
    )


def main() -> None:
    settings = EnvironmentLoader.load_manager()
    setup_logging(settings.get("log_level").value)
    logger = logging.getLogger(__name__)

    transport = HttpTransport()
    prompt = CallbackAuthorizationPrompt()
    token_store = SecureTokenStore(Path(os.getenv("VAULTSYNC_TOKENS_PATH", DEFAULT_TOKENS_PATH)))
    backends = create_backends(settings, transport=transport, prompt=prompt, token_store=token_store)

    app = create_app(backends, authorization_prompt=prompt, transport=transport)

    host = os.environ.get("VAULTSYNC_HOST", "127.0.0.1")
    port = int(os.environ.get("VAULTSYNC_PORT", "8085"))
    logger.info(f"Starting VaultSync on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
