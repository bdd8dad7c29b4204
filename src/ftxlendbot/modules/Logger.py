import datetime
import sys
import threading
import time
from pathlib import Path
from typing import Any, Protocol

from .Utils import format_amount_currency, format_rate_pct


class Output(Protocol):
    def printline(self, line: str) -> None: ...


class ConsoleOutput:
    def printline(self, line: str) -> None:
        sys.stdout.write(line + "\n")
        sys.stdout.flush()


class FileOutput:
    """Appends every line to a local log file."""

    def __init__(self, file_path: str) -> None:
        self.logFile = Path(file_path)
        if self.logFile.parent != Path():
            self.logFile.parent.mkdir(parents=True, exist_ok=True)
        # fail at startup rather than on the first cycle
        self.logFile.touch(exist_ok=True)

    def printline(self, line: str) -> None:
        with self.logFile.open("a", encoding="utf-8") as f:
            f.write(line + "\n")


class Logger:
    def __init__(self, log_file: str = "", debug: bool = False) -> None:
        self._lock = threading.Lock()
        self.debug_on = debug
        self.outputs: list[Output] = [ConsoleOutput()]
        if log_file != "":
            self.outputs.append(FileOutput(log_file))

    @staticmethod
    def timestamp() -> str:
        ts = time.time()
        return datetime.datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")

    def _printline(self, line: str) -> None:
        with self._lock:
            for output in self.outputs:
                output.printline(line)

    def log(self, msg: str) -> None:
        self._printline(f"{self.timestamp()} {msg}")

    def log_error(self, msg: str) -> None:
        self._printline(f"{self.timestamp()} Error {msg}")

    def debug(self, msg: str) -> None:
        if self.debug_on:
            self._printline(f"{self.timestamp()} DEBUG: {msg}")

    def offer(self, amt: Any, cur: str, rate: Any, msg: Any) -> None:
        line = (
            f"{self.timestamp()} Placing {format_amount_currency(amt, cur)} at {format_rate_pct(rate)}/h... "
            f"{self.digestApiMsg(msg)}"
        )
        self._printline(line)

    @staticmethod
    def digestApiMsg(msg: Any) -> str:
        if isinstance(msg, dict):
            if msg.get("success") is True and "error" not in msg:
                return "ok"
            return str(msg.get("error", msg.get("message", "")))
        return str(msg) if msg is not None else ""
