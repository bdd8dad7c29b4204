"""
Exchange API Base class
"""

import abc
import time
from collections.abc import Callable
from typing import Any, TypeVar


F = TypeVar("F", bound=Callable[..., Any])


class ExchangeApi(abc.ABC):
    def __str__(self) -> str:
        return self.__class__.__name__.upper()

    def __repr__(self) -> str:
        return self.__str__()

    @staticmethod
    def synchronized(method: F) -> F:
        """Work with instance method only !!!"""

        def new_method(self: Any, *arg: Any, **kws: Any) -> Any:
            with self.lock:
                return method(self, *arg, **kws)

        return new_method  # type: ignore[return-value]

    @abc.abstractmethod
    def __init__(self, cfg: Any, log: Any) -> None:
        """
        Constructor
        """
        self.req_time_log: Any = []
        self.req_per_period: int = 0
        self.req_period: float = 0
        self.default_req_period: float = 0

    def limit_request_rate(self) -> None:
        now = time.time() * 1000  # milliseconds
        # Start throttling only when the queue is full
        if len(self.req_time_log) == self.req_per_period:
            time_since_oldest_req = now - self.req_time_log[0]
            if time_since_oldest_req < self.req_period:
                sleep_time = (self.req_period - time_since_oldest_req) / 1000
                self.req_time_log.append(now + self.req_period - time_since_oldest_req)
                time.sleep(sleep_time)
                return

        self.req_time_log.append(now)

    def increase_request_timer(self) -> None:
        if self.req_period <= self.default_req_period * 3.0:
            self.req_period += 500

    def reset_request_timer(self) -> None:
        if self.req_period >= self.default_req_period * 1.5:
            self.req_period = self.default_req_period

    @abc.abstractmethod
    def return_balances(self, timeout: float | None = None) -> list[dict[str, Any]]:
        """
        Returns the wallet balances of the account.
        Sample output:
        [{"coin": "USD", "free": 2320.2, "total": 2340.2}, ...]
        """

    @abc.abstractmethod
    def return_lending_rates(self, timeout: float | None = None) -> list[dict[str, Any]]:
        """
        Returns the estimated and previous hourly lending rate of every coin.
        Sample output:
        [{"coin": "USD", "estimate": 1.45e-06, "previous": 1.44e-06}, ...]
        """

    @abc.abstractmethod
    def create_loan_offer(
        self, currency: str, size: float, rate: float, timeout: float | None = None
    ) -> dict[str, Any]:
        """
        Creates a lending offer for a given currency.
        Returns the response envelope, e.g. {"success": true, "result": null}
        or {"success": false, "error": "Not enough balance"}.
        """


class ApiError(Exception):
    pass
