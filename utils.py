import logging
import sys

LEVEL_COLORS = {
    logging.DEBUG: "31",
    logging.INFO: "34",
    logging.WARNING: "33",
    logging.ERROR: "91",
    logging.CRITICAL: "41",
}


def color_text(text, color_code):
    return f"\033[{color_code}m{text}\033[0m"

def sending_text(text):
    return f"{color_text('SENDING  ', '32')} {text}"

def recieved_text(text):
    return f"{color_text('RECIEVED ', '35')} {text}"


class ColorFormatter(logging.Formatter):
    """Formatter that tints the level name the same way the console helpers do."""

    def __init__(self, fmt: str, datefmt: str = "%H:%M:%S", use_color: bool = True) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if self.use_color:
            record.levelname = color_text(f"{levelname:<8}", LEVEL_COLORS.get(record.levelno, "0"))
        else:
            record.levelname = f"{levelname:<8}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def setup_logging(debug: bool = False, stream=None) -> logging.Logger:
    """Install a single coloured console handler on the root logger."""
    stream = stream or sys.stdout
    use_color = bool(getattr(stream, "isatty", lambda: False)())
    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        ColorFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s", use_color=use_color)
    )

    handler.oracle_console = True

    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, "oracle_console", False):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    # requests/urllib3 connection chatter drowns out cycle logs in debug mode
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return root
