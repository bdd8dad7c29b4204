"""
Tests for the FTX request signing and transport.
"""

import dataclasses
import hashlib
import hmac
import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from ftxlendbot.modules.ExchangeApi import ApiError
from ftxlendbot.modules.Ftx import Ftx, sign_payload


@pytest.fixture
def ftx_api(bot_config, mock_log):
    return Ftx(bot_config, mock_log)


def make_response(status_code=200, data=None, text=None):
    response = MagicMock()
    response.status_code = status_code
    if data is None:
        response.json.side_effect = ValueError("No JSON object could be decoded")
        response.text = text or ""
    else:
        response.json.return_value = data
        response.text = json.dumps(data)
    return response


class TestSignPayload:
    def test_signature(self):
        expected = hmac.new(
            b"secret", b"1600000000000GET/api/wallet/balances", hashlib.sha256
        ).hexdigest()

        assert sign_payload("secret", "1600000000000", "GET", "/wallet/balances") == expected

    def test_signature_includes_body(self):
        body = b'{"coin": "USD", "size": 1.0, "rate": 1e-05}'
        expected = hmac.new(
            b"secret", b"1600000000000POST/api/spot_margin/offers" + body, hashlib.sha256
        ).hexdigest()

        assert sign_payload("secret", "1600000000000", "POST", "/spot_margin/offers", body) == expected

    def test_deterministic(self):
        first = sign_payload("secret", "1600000000000", "POST", "/spot_margin/offers", b"{}")
        second = sign_payload("secret", "1600000000000", "POST", "/spot_margin/offers", b"{}")

        assert first == second
        assert len(first) == 64

    @pytest.mark.parametrize(
        "changed",
        [
            {"secret": "secreT"},
            {"timestamp": "1600000000001"},
            {"method": "GET"},
            {"path": "/spot_margin/offerz"},
            {"body": b"{ }"},
        ],
    )
    def test_any_change_changes_signature(self, changed):
        args = {
            "secret": "secret",
            "timestamp": "1600000000000",
            "method": "POST",
            "path": "/spot_margin/offers",
            "body": b"{}",
        }
        original = sign_payload(**args)
        args.update(changed)

        assert sign_payload(**args) != original


class TestSignRequest:
    @patch("ftxlendbot.modules.Ftx.time.time", return_value=1600000000.5)
    def test_headers(self, _mock_time, ftx_api):
        req = ftx_api.sign_request("get", "/wallet/balances")

        assert req.method == "GET"
        assert req.url == "https://ftx.com/api/wallet/balances"
        assert req.headers["Content-Type"] == "application/json"
        assert req.headers["FTX-KEY"] == "key"
        assert req.headers["FTX-SUBACCOUNT"] == "lending"
        assert req.headers["FTX-TS"] == "1600000000500"
        assert req.headers["FTX-SIGN"] == sign_payload(
            "secret", "1600000000500", "GET", "/wallet/balances"
        )
        assert req.body is None

    def test_timestamp_is_shared_with_signature(self, ftx_api):
        with patch("ftxlendbot.modules.Ftx.time.time", side_effect=[1600000000.0, 1700000000.0]):
            req = ftx_api.sign_request("GET", "/wallet/balances")

        assert req.headers["FTX-TS"] == "1600000000000"
        assert req.headers["FTX-SIGN"] == sign_payload(
            "secret", "1600000000000", "GET", "/wallet/balances"
        )

    def test_post_body(self, ftx_api):
        body = b'{"coin": "USD"}'
        req = ftx_api.sign_request("POST", "/spot_margin/offers", body)

        assert req.body == body
        assert req.headers["FTX-SIGN"] == sign_payload(
            "secret", req.headers["FTX-TS"], "POST", "/spot_margin/offers", body
        )

    def test_malformed_url(self, bot_config, mock_log):
        api = Ftx(dataclasses.replace(bot_config, api_url="not a url"), mock_log)

        with pytest.raises(ApiError):
            api.sign_request("GET", "/wallet/balances")


class TestFtxRequests:
    def test_return_balances(self, ftx_api):
        data = {"success": True, "result": [{"coin": "USD", "free": 10.0, "total": 12.5}]}
        with patch.object(ftx_api.session, "send", return_value=make_response(data=data)) as send:
            ret = ftx_api.return_balances()

        assert ret == data["result"]
        prepared = send.call_args[0][0]
        assert prepared.url == "https://ftx.com/api/wallet/balances"
        assert send.call_args[1]["timeout"] == 30

    def test_return_lending_rates_timeout(self, ftx_api):
        data = {"success": True, "result": [{"coin": "USD", "estimate": 1e-05, "previous": 2e-05}]}
        with patch.object(ftx_api.session, "send", return_value=make_response(data=data)) as send:
            ret = ftx_api.return_lending_rates(timeout=3)

        assert ret[0]["estimate"] == 1e-05
        assert send.call_args[1]["timeout"] == 3

    def test_unsuccessful_envelope_raises(self, ftx_api):
        data = {"success": False, "error": "Not logged in"}
        with patch.object(ftx_api.session, "send", return_value=make_response(data=data)):
            with pytest.raises(ApiError) as excinfo:
                ftx_api.return_balances()

        assert "Not logged in" in str(excinfo.value)

    def test_create_loan_offer(self, ftx_api):
        data = {"success": True, "result": None}
        with patch.object(ftx_api.session, "send", return_value=make_response(data=data)) as send:
            ret = ftx_api.create_loan_offer("USD", 1000.0, 6e-05)

        assert ret == data
        prepared = send.call_args[0][0]
        assert prepared.method == "POST"
        assert prepared.url == "https://ftx.com/api/spot_margin/offers"
        assert json.loads(prepared.body) == {"coin": "USD", "size": 1000.0, "rate": 6e-05}

    def test_rejected_offer_returns_envelope(self, ftx_api):
        data = {"success": False, "error": "Size too small"}
        with patch.object(
            ftx_api.session, "send", return_value=make_response(400, data=data)
        ):
            ret = ftx_api.create_loan_offer("USD", 0.0, 6e-05)

        assert ret == data

    def test_bad_gateway(self, ftx_api):
        with patch.object(
            ftx_api.session, "send", return_value=make_response(502, text="Bad Gateway")
        ):
            with pytest.raises(ApiError) as excinfo:
                ftx_api.return_balances()

        assert "bad gateway" in str(excinfo.value)

    def test_connection_error(self, ftx_api):
        with patch.object(
            ftx_api.session, "send", side_effect=requests.ConnectionError("connection refused")
        ):
            with pytest.raises(ApiError) as excinfo:
                ftx_api.return_lending_rates()

        assert "connection refused" in str(excinfo.value)
        assert "/spot_margin/lending_rates" in str(excinfo.value)

    def test_invalid_json(self, ftx_api):
        with patch.object(
            ftx_api.session, "send", return_value=make_response(200, text="<html></html>")
        ):
            with pytest.raises(ApiError) as excinfo:
                ftx_api.return_balances()

        assert "Failed to decode JSON" in str(excinfo.value)

    def test_rate_limited(self, ftx_api):
        data = {"success": False, "error": "Do not send more than 30 requests per second"}
        with patch.object(ftx_api.session, "send", return_value=make_response(429, data=data)):
            with pytest.raises(ApiError):
                ftx_api.return_balances()

        assert ftx_api.req_period == ftx_api.default_req_period + 500

    def test_str(self, ftx_api):
        assert str(ftx_api) == "FTX"
