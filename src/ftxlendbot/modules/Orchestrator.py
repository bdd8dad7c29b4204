import datetime
import signal
import sys
import threading
import traceback
from pathlib import Path
from typing import Any

from ftxlendbot.modules import Configuration
from ftxlendbot.modules.Ftx import Ftx
from ftxlendbot.modules.Lending import LendingEngine
from ftxlendbot.modules.Logger import Logger
from ftxlendbot.modules.Scheduler import HourlyScheduler


class BotOrchestrator:
    def __init__(self, config_path: str | Path | None = None, dry_run: bool = False, verbose: bool = False):
        self.config_path = Path(config_path) if isinstance(config_path, str) else config_path
        self.dry_run = dry_run
        self.verbose = verbose

        # Components
        self.config: Configuration.BotConfig | None = None
        self.log: Logger | None = None
        self.api: Ftx | None = None
        self.engine: LendingEngine | None = None
        self.scheduler: HourlyScheduler | None = None

        self.stop_event = threading.Event()
        self.received_signal: int | None = None

    def initialize(self) -> None:
        """
        Initializes all the bot components, exits if the configuration is unusable.
        """
        try:
            self.config = Configuration.load_config(self.config_path)
        except Configuration.ConfigError as ex:
            self._fatal_config_error(ex)

        try:
            self.log = Logger(
                log_file=self.config.log_file,
                debug=self.config.api_debug_log or self.verbose,
            )
        except OSError as ex:
            print(f"Error opening log file '{self.config.log_file}': {ex}")
            sys.exit(1)

        self.api = Ftx(self.config, self.log)
        self.engine = LendingEngine(
            self.config,
            self.api,
            self.log,
            stop_event=self.stop_event,
            dry_run=self.dry_run,
        )
        self.scheduler = HourlyScheduler(
            self.lending_job,
            self.config.schedule.minute,
            self.stop_event,
            self.log,
            timezone=self.config.schedule.timezone,
        )

    def _fatal_config_error(self, ex: Exception) -> None:
        msg = f"Error loading configuration: {ex}"
        log_file = str(Configuration.get("BOT", "logfile", "lending.log"))
        try:
            Logger(log_file=log_file).log_error(msg)
        except OSError:
            print(msg)
        sys.exit(1)

    def lending_job(self) -> None:
        """
        One scheduled lending cycle, never lets an exception escape into the scheduler.
        """
        try:
            self.engine.run_cycle()
        except Exception as ex:
            self._handle_exception(ex)

    def _handle_exception(self, ex: Exception) -> None:
        self.log.log_error(f"Unhandled error during the lending cycle: {ex}")
        print(traceback.format_exc())

    def _on_signal(self, signum: int, _frame: Any) -> None:
        # no logging here, the interrupted thread may hold the logger lock
        self.received_signal = signum
        self.stop_event.set()

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGINT, self._on_signal)
        signal.signal(signal.SIGTERM, self._on_signal)

    def run_once(self) -> None:
        self.log.log(f"Lending Currency is: {self.config.credentials.currency}")
        if self.dry_run:
            self.log.log("Dry run mode, no offer will be sent")
        self.lending_job()
        self.api.close()

    def run(self) -> None:
        """
        Starts the scheduler and blocks until a termination signal arrives.
        """
        self.log.log(f"Lending Currency is: {self.config.credentials.currency}")
        if self.dry_run:
            self.log.log("Dry run mode, no offer will be sent")
        self.install_signal_handlers()
        self.scheduler.start()

        while not self.stop_event.wait(1.0):
            pass

        if self.received_signal is not None:
            self.log.log(f"Received {signal.Signals(self.received_signal).name}, shutting down")
        self.stop()

    def stop(self) -> None:
        self.stop_event.set()
        if self.scheduler:
            # an in-flight request is bounded by the api timeout
            self.scheduler.stop(timeout=self.config.timeout + 5 if self.config else None)
        if self.api:
            self.api.close()
        if self.log:
            self.log.log(f"lending bot is stopping on {datetime.datetime.now().astimezone()}")
