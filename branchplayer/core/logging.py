import logging
import sys

# attributes every LogRecord has; anything else came in through `extra=`
_RECORD_FIELDS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "extra"}


class SafeExtraFormatter(logging.Formatter):
    """
    Appends the `extra={...}` fields of a record as `k=v` pairs.

    Records logged without extras (third-party loggers) format as `-`.
    """

    def format(self, record: logging.LogRecord) -> str:
        fields = {k: v for k, v in vars(record).items() if k not in _RECORD_FIELDS}
        record.extra = " ".join(f"{k}={v}" for k, v in sorted(fields.items())) or "-"
        return super().format(record)


def setup_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        SafeExtraFormatter(
            fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s | %(extra)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    root = logging.getLogger()
    root.setLevel(level.upper())
    root.handlers.clear()
    root.addHandler(handler)

    # request lines for every audio download are noise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
