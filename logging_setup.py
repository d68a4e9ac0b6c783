import logging
import sys
from pathlib import Path

# Module, die zur Anwendung gehören (flaches Layout, daher explizite Liste)
APP_LOGGERS = (
    "main", "auth_service", "security", "task_service", "task_query",
    "events", "notifications", "cache", "locale_resolver", "rate_limit",
    "routers", "request", "dependencies",
)


class _ConsoleNoiseFilter(logging.Filter):
    """
    Hält die Konsole lesbar:
    - eigene Logs immer durchlassen
    - uvicorn-Zugriffslogs ab INFO
    - sonstige Drittanbieter erst ab ERROR
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.split(".")[0] in APP_LOGGERS:
            return True
        if name.startswith("uvicorn"):
            return record.levelno >= logging.INFO
        return record.levelno >= logging.ERROR


def setup_logging(log_dir="logs", console_level=logging.INFO, file_level=logging.DEBUG) -> None:
    """
    Konfiguriert das Root-Logging einmalig:
    - Konsole (stderr), gefiltert
    - Datei <log_dir>/api.log mit allen Details

    Früh aufrufen, bevor der erste Logger schreibt.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "api.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Doppelte Handler vermeiden (z.B. bei uvicorn reload)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    logging.captureWarnings(True)
