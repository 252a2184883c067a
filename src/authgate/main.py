"""Application entry point for the AuthGate server."""

from authgate.app import App
from authgate.config import Config
from authgate.logging import setup_logging
from authgate.web.runner import run_server


def main() -> None:
    config = Config()
    setup_logging(config.debug)
    app = App(config)
    run_server(app, config)


if __name__ == "__main__":
    main()
