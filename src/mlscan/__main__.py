"""Entry point for running mlscan as a module.

Usage:
    python -m mlscan train users.mbox -s dev1@example.com
    python -m mlscan --help
"""

from dotenv import load_dotenv

load_dotenv()  # MLSCAN_CONFIG_PATH may come from .env

from mlscan.cli import main  # noqa: E402

if __name__ == "__main__":
    main()
