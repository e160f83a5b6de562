"""Error kinds + structured error logging — JSON to errors.log, no terminal formatting."""
import json
import logging
import sys
from datetime import datetime
from enum import Enum
from typing import Optional

from .config import ERRORS_LOG, OUTPUT_DIR, DEV_MODE

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    TRANSPORT = "transport"
    ACCESS_GATED = "access_gated"
    NO_RESULTS = "no_results"
    MISSING_CREDENTIAL = "missing_credential"
    PLAYER_ERROR = "player_error"
    IO_ERROR = "io_error"


_FRIENDLY_MESSAGES = {
    ErrorKind.TRANSPORT: "Network request failed — check your connection or cookie.",
    ErrorKind.ACCESS_GATED: "Couldn't get a stream link — the song likely requires a VIP account.",
    ErrorKind.NO_RESULTS: "No songs found.",
    ErrorKind.MISSING_CREDENTIAL: "No cookie configured — set one with: cookie <value>",
    ErrorKind.PLAYER_ERROR: "Playback failed.",
    ErrorKind.IO_ERROR: "Couldn't save the file.",
}

# Empty-state signals are not failures; they are never written to errors.log
_NOT_LOGGED = {ErrorKind.NO_RESULTS}


def friendly_message(kind: ErrorKind) -> str:
    return _FRIENDLY_MESSAGES.get(kind, f"Something went wrong ({kind}).")


def format_error(
    kind: ErrorKind,
    detail: str = "",
    context: Optional[dict] = None,
) -> str:
    """Record a failure and return the short message to show the user."""
    entry = {
        "timestamp": datetime.now().isoformat(),
        "kind": kind.value,
        "context": context,
        "error": detail,
        "python": sys.version.split()[0],
    }

    if kind not in _NOT_LOGGED:
        _append_to_log(entry)
        logger.error("Error (%s): %s", kind.value, detail)

    if DEV_MODE:
        return json.dumps(entry, indent=2)
    return friendly_message(kind)


def _append_to_log(entry: dict):
    try:
        OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
        with open(ERRORS_LOG, "a") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")
    except OSError:
        logger.warning("Could not write to %s", ERRORS_LOG)
