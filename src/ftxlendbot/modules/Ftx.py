import hashlib
import hmac
import json
import threading
import time
from collections import deque
from typing import Any

import requests

from .Configuration import BotConfig
from .ExchangeApi import ApiError, ExchangeApi


def sign_payload(secret: str, timestamp: str, method: str, path: str, body: bytes = b"") -> str:
    """
    Signs a request the way the FTX private API expects it.

    The signed message is ``timestamp + METHOD + "/api" + path + body`` and the
    signature is the hex encoded HMAC-SHA256 of it, keyed by the API secret.
    """
    message = f"{timestamp}{method.upper()}/api{path}".encode("utf-8") + body
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class Ftx(ExchangeApi):
    def __init__(self, cfg: BotConfig, log: Any) -> None:
        super().__init__(cfg, log)
        self.cfg = cfg
        self.log = log
        self.lock = threading.RLock()
        self.req_per_period = 30
        self.default_req_period = 1000.0  # milliseconds, 30 requests per second
        self.req_period = self.default_req_period
        self.req_time_log: deque[float] = deque(maxlen=self.req_per_period)
        self.url = cfg.api_url
        self.key = cfg.credentials.api_key
        self.secret = cfg.credentials.secret
        self.sub_account = cfg.credentials.sub_account
        self.timeout = cfg.timeout
        self.session = requests.Session()

    @property
    def _timestamp(self) -> str:
        """
        Returns the current unix time in milliseconds
        Used in authentication
        """
        return str(int(time.time() * 1000))

    def sign_request(self, method: str, path: str, body: bytes = b"") -> requests.PreparedRequest:
        """
        Builds an authenticated request, no I/O is performed.

        Raises:
            ApiError: The request could not be built (e.g. malformed url).
        """
        method = method.upper()
        timestamp = self._timestamp
        headers = {
            "Content-Type": "application/json",
            "FTX-KEY": self.key,
            "FTX-SIGN": sign_payload(self.secret, timestamp, method, path, body),
            "FTX-TS": timestamp,
            "FTX-SUBACCOUNT": self.sub_account,
        }
        try:
            return requests.Request(
                method, f"{self.url}{path}", headers=headers, data=body or None
            ).prepare()
        except (requests.RequestException, ValueError) as ex:
            raise ApiError(f"{ex} Building request for {self.url + path}") from ex

    @ExchangeApi.synchronized
    def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        # keep the request per second limit
        self.limit_request_rate()

        body = json.dumps(payload).encode("utf-8") if payload is not None else b""
        prepared = self.sign_request(method, path, body)
        url = self.url + path
        try:
            r = self.session.send(prepared, timeout=timeout or self.timeout)
        except requests.RequestException as ex:
            raise ApiError(f"{ex} Requesting {url}") from ex
        self.log.debug(f"{method.upper()}: {url} body={body.decode('utf-8')} -> {r.status_code} {r.text}")

        try:
            data = r.json()
        except ValueError:
            data = None

        if r.status_code == 429:
            self.increase_request_timer()
            raise ApiError(f"API Error 429: Rate limit exceeded. Requesting {url}")
        if r.status_code != 200:
            # the exchange explains rejected requests in the usual envelope
            if isinstance(data, dict) and data.get("success") is False and "error" in data:
                return data
            if r.status_code == 502 or r.status_code in range(520, 527):
                raise ApiError(
                    f"API Error {r.status_code}: The web server reported a bad gateway or gateway timeout error."
                )
            raise ApiError(f"API Error {r.status_code}: {r.text} Requesting {url}")

        if not isinstance(data, dict):
            raise ApiError(f"Failed to decode JSON response: {r.text} Requesting {url}")

        # Check in case something has gone wrong and the timer is too big
        self.reset_request_timer()
        return data

    @staticmethod
    def _result_list(data: dict[str, Any], path: str) -> list[dict[str, Any]]:
        if not data.get("success"):
            raise ApiError(f"{data.get('error', 'Unknown error')} Requesting {path}")
        result = data.get("result")
        if not isinstance(result, list):
            raise ApiError(f"Unexpected result {result!r} Requesting {path}")
        return result

    def return_balances(self, timeout: float | None = None) -> list[dict[str, Any]]:
        """
        https://docs.ftx.com/#get-balances
        """
        path = "/wallet/balances"
        return self._result_list(self._request("GET", path, timeout=timeout), path)

    def return_lending_rates(self, timeout: float | None = None) -> list[dict[str, Any]]:
        """
        https://docs.ftx.com/#get-lending-rates
        """
        path = "/spot_margin/lending_rates"
        return self._result_list(self._request("GET", path, timeout=timeout), path)

    def create_loan_offer(
        self, currency: str, size: float, rate: float, timeout: float | None = None
    ) -> dict[str, Any]:
        """
        https://docs.ftx.com/#submit-lending-offer
        """
        payload = {"coin": currency, "size": size, "rate": rate}
        return self._request("POST", "/spot_margin/offers", payload, timeout=timeout)

    def close(self) -> None:
        self.session.close()
