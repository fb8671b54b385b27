"""Tests for the payment gateways and rate provider."""

import json
from decimal import Decimal

import httpx
import pytest

from aerotrade.assets import Asset
from aerotrade.config import Settings
from aerotrade.errors import GatewayError
from aerotrade.providers import (
    FALLBACK_BANKS,
    DryRunGateway,
    FlutterwaveGateway,
    RateProvider,
    Recipient,
    create_gateway,
)

from conftest import COINGECKO_PRICES, coingecko_transport

RECIPIENT = Recipient(
    account_number="0123456789",
    bank_code="058",
    account_name="JOHN DOE",
    bank_name="Guaranty Trust Bank",
)


def flutterwave(handler) -> FlutterwaveGateway:
    return FlutterwaveGateway(
        secret_key="FLWSECK_TEST-abc",
        base_url="https://flw.test/v3",
        transport=httpx.MockTransport(handler),
    )


class TestRateProvider:
    @pytest.mark.asyncio
    async def test_live_rates(self):
        provider = RateProvider(transport=coingecko_transport())
        snapshot = await provider.get_rates()

        assert snapshot.is_fallback is False
        assert snapshot.ngn(Asset.BTC) == Decimal("50000000")
        assert snapshot.usd(Asset.ETH) == Decimal("2000")
        assert snapshot.usd(Asset.USDT) == Decimal("1")

    @pytest.mark.asyncio
    async def test_http_error_falls_back(self):
        provider = RateProvider(transport=coingecko_transport(status_code=429))
        snapshot = await provider.get_rates()
        assert snapshot.is_fallback is True
        assert snapshot.ngn(Asset.BTC) > 0

    @pytest.mark.asyncio
    async def test_malformed_payload_falls_back(self):
        provider = RateProvider(transport=coingecko_transport(prices={"bitcoin": {"ngn": 1}}))
        snapshot = await provider.get_rates()
        assert snapshot.is_fallback is True

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        provider = RateProvider(transport=httpx.MockTransport(handler))
        snapshot = await provider.get_rates()
        assert snapshot.is_fallback is True

    @pytest.mark.asyncio
    async def test_cache_and_force_refresh(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=COINGECKO_PRICES)

        provider = RateProvider(cache_seconds=300, transport=httpx.MockTransport(handler))
        await provider.get_rates()
        await provider.get_rates()
        assert len(calls) == 1

        await provider.get_rates(force_refresh=True)
        assert len(calls) == 2


class TestFlutterwaveGateway:
    @pytest.mark.asyncio
    async def test_verify_account(self):
        def handler(request):
            assert request.url.path == "/v3/accounts/resolve"
            assert request.headers["Authorization"] == "Bearer FLWSECK_TEST-abc"
            body = json.loads(request.content)
            assert body == {"account_number": "0123456789", "account_bank": "058"}
            return httpx.Response(
                200, json={"status": "success", "data": {"account_name": "JOHN DOE"}}
            )

        result = await flutterwave(handler).verify_account("0123456789", "058")
        assert result.account_name == "JOHN DOE"

    @pytest.mark.asyncio
    async def test_verify_account_rejected(self):
        def handler(request):
            return httpx.Response(400, json={"status": "error", "message": "Invalid account"})

        with pytest.raises(GatewayError) as exc_info:
            await flutterwave(handler).verify_account("0000000000", "058")
        assert exc_info.value.message == "Invalid account"
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_transfer_accepted(self):
        def handler(request):
            assert request.url.path == "/v3/transfers"
            body = json.loads(request.content)
            assert body["amount"] == 9850.0
            assert body["currency"] == "NGN"
            assert body["reference"] == "AEROREF"
            assert body["account_bank"] == "058"
            return httpx.Response(
                200,
                json={"status": "success", "data": {"id": 991, "reference": "AEROREF", "status": "NEW"}},
            )

        result = await flutterwave(handler).transfer(Decimal("9850"), RECIPIENT, "AEROREF")
        assert result.transfer_id == "991"
        assert result.status == "NEW"

    @pytest.mark.asyncio
    async def test_transfer_rejected(self):
        def handler(request):
            return httpx.Response(400, json={"status": "error", "message": "Insufficient balance"})

        with pytest.raises(GatewayError):
            await flutterwave(handler).transfer(Decimal("9850"), RECIPIENT, "AEROREF")

    @pytest.mark.asyncio
    async def test_transfer_network_error(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        with pytest.raises(GatewayError):
            await flutterwave(handler).transfer(Decimal("9850"), RECIPIENT, "AEROREF")

    @pytest.mark.asyncio
    async def test_check_status(self):
        def handler(request):
            assert request.url.path == "/v3/transfers/991"
            return httpx.Response(
                200,
                json={
                    "status": "success",
                    "data": {"id": 991, "amount": 9850, "status": "SUCCESSFUL", "reference": "AEROREF"},
                },
            )

        status = await flutterwave(handler).check_status("991")
        assert status.is_successful
        assert status.amount == Decimal("9850")

    @pytest.mark.asyncio
    async def test_check_status_unavailable(self):
        def handler(request):
            return httpx.Response(500, text="oops")

        assert await flutterwave(handler).check_status("991") is None

    @pytest.mark.asyncio
    async def test_list_banks_sorted(self):
        def handler(request):
            return httpx.Response(
                200,
                json={"status": "success", "data": [
                    {"name": "Zenith Bank", "code": "057"},
                    {"name": "Access Bank", "code": "044"},
                ]},
            )

        banks = await flutterwave(handler).list_banks()
        assert [b.code for b in banks] == ["044", "057"]

    @pytest.mark.asyncio
    async def test_list_banks_fallback(self):
        def handler(request):
            return httpx.Response(503)

        assert await flutterwave(handler).list_banks() == list(FALLBACK_BANKS)


class TestDryRunGateway:
    @pytest.mark.asyncio
    async def test_known_and_unknown_accounts(self, gateway: DryRunGateway):
        known = await gateway.verify_account("0123456789", "058")
        unknown = await gateway.verify_account("5555551234", "044")
        assert known.account_name == "JOHN DOE"
        assert unknown.account_name == "Test User 1234"

    @pytest.mark.asyncio
    async def test_transfer_then_status(self, gateway: DryRunGateway):
        result = await gateway.transfer(Decimal("1000"), RECIPIENT, "AEROREF")
        status = await gateway.check_status(result.transfer_id)
        assert status.is_successful
        assert status.reference == "AEROREF"

    @pytest.mark.asyncio
    async def test_failing_transfers(self):
        gateway = DryRunGateway(fail_transfers=True)
        with pytest.raises(GatewayError):
            await gateway.transfer(Decimal("1000"), RECIPIENT, "AEROREF")


class TestFactory:
    def test_default_is_dryrun(self):
        gateway = create_gateway(Settings(_env_file=None, payment_provider="dryrun"))
        assert gateway.name == "dryrun"

    def test_flutterwave(self):
        settings = Settings(_env_file=None, payment_provider="flutterwave", flw_secret_key="FLWSECK-x")
        gateway = create_gateway(settings)
        assert isinstance(gateway, FlutterwaveGateway)

    def test_unknown_falls_back_to_dryrun(self):
        assert create_gateway(Settings(_env_file=None, payment_provider="paystack")).name == "dryrun"
