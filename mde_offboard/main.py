"""Entry point: delegates to CLI app (one module per mode)."""

from rich.traceback import install

from mde_offboard.cli import app
from mde_offboard.utils.tracing import shutdown_tracing


def run() -> None:
    try:
        install(show_locals=False, max_frames=5, word_wrap=True)
        app()
    finally:
        shutdown_tracing()


if __name__ == "__main__":
    run()
