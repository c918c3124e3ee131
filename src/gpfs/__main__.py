"""Module entrypoint so ``python -m gpfs`` invokes the CLI.

The detached daemon is spawned this way (``python -m gpfs daemon start
--foreground``) so it runs under the same interpreter as its parent.
"""

from __future__ import annotations

from .cli import main


def run() -> int:  # pragma: no cover - thin wrapper
    return main(None)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(run())
