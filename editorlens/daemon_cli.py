"""Entry point for the editorlens daemon."""

import asyncio

from .daemon.server import run_daemon


def main():
    asyncio.run(run_daemon())


if __name__ == "__main__":
    main()
