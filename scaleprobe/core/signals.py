"""Signal handling so that termination still runs scenario teardown."""

from __future__ import annotations

import logging
import signal
import types

from scaleprobe.constants import EXIT_SIGTERM

logger = logging.getLogger(__name__)


def _sigterm_handler(signum: int, frame: types.FrameType | None) -> None:
    """Turn SIGTERM into SystemExit so pending ``finally`` blocks run."""
    logger.warning("Received signal %d, tearing down before exit", signum)
    raise SystemExit(EXIT_SIGTERM)


def setup_signal_handlers() -> None:
    """Install the SIGTERM handler.

    SIGINT already raises KeyboardInterrupt, which unwinds through the
    orchestrator's teardown. SIGTERM's default action kills the process
    outright and would leak every scenario resource.
    """
    signal.signal(signal.SIGTERM, _sigterm_handler)
