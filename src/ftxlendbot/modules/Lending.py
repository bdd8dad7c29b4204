import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from .Configuration import BotConfig
from .ExchangeApi import ApiError, ExchangeApi
from .Logger import Logger
from .Utils import annualize_rate


T = TypeVar("T")

# part of the remaining cycle window each fetch step may spend on retries
BALANCE_STEP_SHARE = 1 / 3
RATE_STEP_SHARE = 1 / 2


@dataclass(frozen=True)
class LendingResult:
    success: bool
    currency: str
    size: float = 0.0
    rate: float = 0.0
    estimate: float = 0.0
    error: str = ""

    @property
    def submitted_apy(self) -> float:
        return annualize_rate(self.rate)

    @property
    def estimated_apy(self) -> float:
        return annualize_rate(self.estimate)

    @property
    def summary(self) -> str:
        if not self.success:
            return f"Submit lending offer failed, error: {self.error}"
        return (
            f"Submit lending offer success, Currency: {self.currency}, Size: {self.size:f}, "
            f"Lending APY: {self.submitted_apy:f}%, Estimate APY: {self.estimated_apy:f}%"
        )


class LendingEngine:
    """
    Reads the balance and the market lending rate of one currency and offers
    the whole balance slightly below the estimated rate.

    ``run_cycle`` is one submitting phase, bounded by the schedule's cycle
    window. Every step is retried on its own with exponential backoff and the
    cycle ends after the first accepted offer, unless ``resubmit_until_deadline``
    is set, in which case the whole sequence repeats until the window closes.
    """

    def __init__(
        self,
        cfg: BotConfig,
        api: ExchangeApi,
        log: Logger,
        stop_event: threading.Event | None = None,
        dry_run: bool = False,
    ) -> None:
        self.cfg = cfg
        self.api = api
        self.log = log
        self.currency = cfg.credentials.currency
        self.policy = cfg.policy
        self.schedule = cfg.schedule
        self.stop_event = stop_event or threading.Event()
        self.dry_run = dry_run
        self.last_result: LendingResult | None = None
        self._deadline: float | None = None
        self._step_deadline: float | None = None

    def _active_deadline(self) -> float | None:
        if self._step_deadline is not None:
            return self._step_deadline
        return self._deadline

    def _timeout(self) -> float | None:
        deadline = self._active_deadline()
        if deadline is None:
            return None
        remaining = deadline - time.monotonic()
        return max(1.0, min(float(self.cfg.timeout), remaining))

    def _stopped(self) -> bool:
        if self.stop_event.is_set():
            return True
        deadline = self._active_deadline()
        return deadline is not None and time.monotonic() >= deadline

    def _wait(self, delay: float) -> bool:
        """Sleeps for delay seconds at most, returns False if the step has to end."""
        deadline = self._active_deadline()
        if deadline is not None:
            delay = min(delay, deadline - time.monotonic())
        if delay > 0 and self.stop_event.wait(delay):
            return False
        return not self._stopped()

    def _find_coin_value(self, entries: list[dict[str, Any]], key: str, what: str) -> float | None:
        for entry in entries:
            if entry.get("coin") == self.currency:
                try:
                    return float(entry[key])
                except (KeyError, TypeError, ValueError):
                    self.log.log_error(f"{what}: unexpected {key} {entry.get(key)!r} for {self.currency}")
                    return None
        self.log.log_error(f"{what}: {self.currency} not found in the response")
        return None

    def get_balance(self) -> float | None:
        """
        Returns the total balance of the lending currency,
        None when the exchange could not tell us.
        """
        try:
            balances = self.api.return_balances(timeout=self._timeout())
        except ApiError as ex:
            self.log.log_error(f"Get account balance failed, err: {ex}")
            return None
        return self._find_coin_value(balances, "total", "Get account balance")

    def get_lending_rate(self) -> float | None:
        """
        Returns the estimated hourly lending rate of the lending currency,
        None when the exchange could not tell us.
        """
        try:
            rates = self.api.return_lending_rates(timeout=self._timeout())
        except ApiError as ex:
            self.log.log_error(f"Get lending rates failed, err: {ex}")
            return None
        return self._find_coin_value(rates, "estimate", "Get lending rates")

    def compute_offer_rate(self, estimate: float) -> float:
        # offer below the estimate so the offer gets filled
        return max(0.0, estimate * self.policy.rate_factor)

    def submit_offer(
        self, currency: str, size: float, rate: float, estimate: float | None = None
    ) -> LendingResult:
        if estimate is None:
            estimate = rate / self.policy.rate_factor if self.policy.rate_factor else rate

        if self.dry_run:
            self.log.offer(size, currency, rate, "Dry run, offer not sent")
            return LendingResult(True, currency, size, rate, estimate)

        try:
            resp = self.api.create_loan_offer(currency, size, rate, timeout=self._timeout())
        except ApiError as ex:
            return LendingResult(False, currency, size, rate, estimate, error=str(ex))

        self.log.offer(size, currency, rate, resp)
        if not resp.get("success"):
            return LendingResult(False, currency, size, rate, estimate, error=str(resp.get("error", "")))
        return LendingResult(True, currency, size, rate, estimate)

    def _retry(self, step: Callable[[], T | None], what: str, share: float = 1.0) -> T | None:
        """
        Retries step with exponential backoff until it returns a value.

        The step may use ``share`` of the time left in the cycle, so the
        following steps keep a part of the window.
        """
        if self._deadline is not None and share < 1.0:
            now = time.monotonic()
            self._step_deadline = now + max(self._deadline - now, 0) * share
        delay = self.schedule.retry_interval
        max_attempts = self.schedule.max_attempts
        try:
            for attempt in range(1, max_attempts + 1):
                if self._stopped():
                    return None
                value = step()
                if value is not None:
                    return value
                if attempt == max_attempts:
                    break
                self.log.log(f"{what} failed (attempt {attempt}/{max_attempts}), retrying in {delay:g}s")
                if not self._wait(delay):
                    break
                delay = min(delay * 2, self.schedule.max_backoff)
            return None
        finally:
            self._step_deadline = None

    def _resolve(self, value: float | None, what: str) -> float | None:
        if value is not None:
            return value
        if self.policy.unavailable_as_zero:
            self.log.log_error(f"{self.currency} {what} unavailable, using 0 instead")
            return 0.0
        self.log.log_error(f"{self.currency} {what} unavailable, no offer will be placed")
        return None

    def _offer_size(self, balance: float) -> float | None:
        """
        Returns the size to offer, None when no offer should be placed.
        A negative total (borrowed funds) is never offered.
        """
        if balance > 0:
            return balance
        if self.policy.skip_zero_balance:
            self.log.log(f"No {self.currency} to lend (balance {balance:f}), skipping the lending offer")
            return None
        self.log.log(f"Warning: {self.currency} balance is {balance:f}, submitting an offer of size 0")
        return 0.0

    def _lend_once(self) -> LendingResult | None:
        balance = self._retry(self.get_balance, "Get account balance", BALANCE_STEP_SHARE)
        if self.stop_event.is_set():
            return None
        balance = self._resolve(balance, "balance")
        if balance is None:
            return None

        estimate = self._retry(self.get_lending_rate, "Get lending rates", RATE_STEP_SHARE)
        if self.stop_event.is_set():
            return None
        estimate = self._resolve(estimate, "lending rate")
        if estimate is None:
            return None
        size = self._offer_size(balance)
        if size is None:
            return None

        rate = self.compute_offer_rate(estimate)
        attempts: list[LendingResult] = []

        def submit() -> LendingResult | None:
            result = self.submit_offer(self.currency, size, rate, estimate)
            attempts.append(result)
            return result if result.success else None

        self._retry(submit, "Submit lending offer")
        return attempts[-1] if attempts else None

    def _resubmit_until_deadline(self) -> LendingResult | None:
        result = None
        while not self._stopped():
            balance = self._resolve(self.get_balance(), "balance")
            estimate = self._resolve(self.get_lending_rate(), "lending rate")
            size = self._offer_size(balance) if balance is not None and estimate is not None else None
            if size is not None:
                result = self.submit_offer(
                    self.currency, size, self.compute_offer_rate(estimate), estimate
                )
            if not self._wait(self.schedule.retry_interval):
                break
        return result

    def run_cycle(self) -> LendingResult | None:
        """
        Runs one lending cycle and logs its outcome.
        """
        self._deadline = time.monotonic() + self.schedule.cycle_window
        try:
            if self.schedule.resubmit_until_deadline:
                result = self._resubmit_until_deadline()
            else:
                result = self._lend_once()
        finally:
            self._deadline = None

        if result is None:
            self.log.log(f"Lending cycle for {self.currency} ended without an offer")
        else:
            self.log.log(result.summary)
        self.last_result = result
        return result
