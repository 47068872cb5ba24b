"""Logging formatters and filters for stream routing."""

import logging


class StreamFormatter(logging.Formatter):
    """Logging formatter that prepends stream tags based on extra parameter."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with stream prefix if present.

        Parameters
        ----------
        record : logging.LogRecord
            Log record to format

        Returns
        -------
        str
            Formatted log message with optional stream prefix
        """
        msg = super().format(record)
        stream = getattr(record, "stream", None)

        if stream == "kubectl":
            return f"[kubectl] {msg}"

        return msg


class StreamRoutingFilter(logging.Filter):
    """Route records to stdout or stderr.

    Records logged with ``extra={"stream": "stdout"}`` are report output and
    go to stdout; everything else is diagnostics and goes to stderr.

    Parameters
    ----------
    target : str
        "stdout" or "stderr"
    """

    def __init__(self, target: str) -> None:
        super().__init__()
        self.target = target

    def filter(self, record: logging.LogRecord) -> bool:
        is_report = getattr(record, "stream", None) == "stdout"
        return is_report if self.target == "stdout" else not is_report
