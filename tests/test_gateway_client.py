"""Gateway client request building and response classification."""

import asyncio
import json

import httpx
import pytest

from pesaflow.common.errors import AuthError, UpstreamError
from pesaflow.services.gateway.client import GatewayClient, vendor_error
from pesaflow.services.gateway.schemas import AccessToken, BillingAddress, OrderRequest

TOKEN = AccessToken(token="tok")


def _run(config, handler, operation):
    """Run `operation(client)` against a client whose HTTP goes to `handler`."""

    async def main():
        async with GatewayClient(config, transport=httpx.MockTransport(handler)) as client:
            return await operation(client)

    return asyncio.run(main())


def _order() -> OrderRequest:
    return OrderRequest(
        id="KLB-1-abc",
        currency="KES",
        amount=1000,
        description="Donation",
        callback_url="https://donate.example.org/cb",
        notification_id="ipn-1",
        billing_address=BillingAddress(
            phone_number="254712345678",
            email_address="jane@example.org",
            country_code="KE",
            first_name="Jane",
            last_name="Doe",
        ),
    )


def test_base_url_follows_environment(config):
    production = config.model_copy(update={"environment": "production"})

    assert GatewayClient(config).base_url == "https://cybqa.pesapal.com/pesapalv3"
    assert GatewayClient(production).base_url == "https://pay.pesapal.com/v3"


def test_authenticate_posts_credential(config):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={"token": "abc", "expiryDate": "2030-01-01T00:00:00Z", "status": "200"})

    token = _run(config, handler, lambda c: c.authenticate(config.credential))

    assert token.token == "abc"
    assert token.expiry_date == "2030-01-01T00:00:00Z"
    assert seen["url"] == "https://cybqa.pesapal.com/pesapalv3/api/Auth/RequestToken"
    assert seen["body"] == {"consumer_key": "key", "consumer_secret": "secret"}
    assert seen["auth"] is None


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(401, json={"message": "Unauthorized"}),
        httpx.Response(
            200,
            json={
                "token": None,
                "error": {"error_type": "api_error", "code": "invalid_consumer_key_or_secret_provided", "message": ""},
                "status": "500",
            },
        ),
        httpx.Response(200, json={"status": "200"}),
    ],
)
def test_authenticate_failures_are_auth_errors(config, response):
    with pytest.raises(AuthError):
        _run(config, lambda request: response, lambda c: c.authenticate(config.credential))


def test_list_registrations_sends_bearer_token(config):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        assert request.url.path == "/pesapalv3/api/URLSetup/GetIpnList"
        assert request.headers["authorization"] == "Bearer tok"
        return httpx.Response(
            200,
            json=[
                {
                    "url": "https://donate.example.org/api/pesapal/ipn",
                    "created_date": "2024-01-01T10:00:00",
                    "ipn_id": "e32182ca-0983-4fa0-91bc-c3bb813ba750",
                    "ipn_notification_type": "GET",
                    "ipn_status": 1,
                }
            ],
        )

    registrations = _run(config, handler, lambda c: c.list_registrations(TOKEN))

    assert [r.ipn_id for r in registrations] == ["e32182ca-0983-4fa0-91bc-c3bb813ba750"]


def test_list_registrations_non_success_is_upstream_error(config):
    with pytest.raises(UpstreamError) as info:
        _run(
            config,
            lambda request: httpx.Response(500, json={"message": "boom"}),
            lambda c: c.list_registrations(TOKEN),
        )

    assert info.value.vendor_message == "boom"
    assert info.value.transient is True


def test_register_is_not_retried(config):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(json.loads(request.content))
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamError) as info:
        _run(config, handler, lambda c: c.register(TOKEN, "https://donate.example.org/ipn", "POST"))

    assert calls == [{"ipn_notification_type": "POST", "url": "https://donate.example.org/ipn"}]
    assert info.value.transient is True


def test_submit_order_returns_redirect(config):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["id"] == "KLB-1-abc"
        assert body["billing_address"]["first_name"] == "Jane"
        assert "terms_and_conditions_id" not in body
        return httpx.Response(
            200,
            json={
                "order_tracking_id": "b945e4af-80a5-4ec1-8706-e03f8332fb04",
                "merchant_reference": "KLB-1-abc",
                "redirect_url": "https://cybqa.pesapal.com/pesapaliframe/PesapalIframe3/Index?OrderTrackingId=b945",
                "error": None,
                "status": "200",
            },
        )

    response = _run(config, handler, lambda c: c.submit_order(TOKEN, _order()))

    assert response.order_tracking_id == "b945e4af-80a5-4ec1-8706-e03f8332fb04"
    assert response.redirect_url.startswith("https://cybqa.pesapal.com/")


def test_submit_order_without_redirect_is_upstream_error(config):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"order_tracking_id": None, "redirect_url": None, "message": "no redirect"})

    with pytest.raises(UpstreamError) as info:
        _run(config, handler, lambda c: c.submit_order(TOKEN, _order()))

    assert info.value.vendor_message == "no redirect"


def test_submit_order_retry_reuses_merchant_reference(config):
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        if len(bodies) == 1:
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(200, json={"order_tracking_id": "trk", "merchant_reference": "KLB-1-abc", "redirect_url": "https://x"})

    _run(config, handler, lambda c: c.submit_order(TOKEN, _order()))

    assert len(bodies) == 2
    assert bodies[0] == bodies[1]


def test_timeout_after_retries_is_transient_upstream_error(config):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(UpstreamError) as info:
        _run(config, handler, lambda c: c.fetch_status(TOKEN, "trk"))

    assert len(calls) == 1 + config.max_retries
    assert info.value.transient is True
    assert "timed out" in info.value.message


def test_fetch_status_passes_tracking_id_and_tolerates_null_error(config):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["orderTrackingId"] == "trk-9"
        return httpx.Response(
            200,
            json={
                "payment_method": "Visa",
                "amount": 1000.0,
                "created_date": "2024-01-01T10:00:00",
                "confirmation_code": "6513008693186320103009",
                "payment_status_description": "Completed",
                "description": None,
                "message": "Request processed successfully",
                "payment_account": "476173**0010",
                "call_back_url": "https://donate.example.org/cb?OrderTrackingId=trk-9",
                "status_code": 1,
                "merchant_reference": "KLB-1-abc",
                "payment_status_code": "",
                "currency": "KES",
                "error": {"error_type": None, "code": None, "message": None, "call_back_url": None},
                "status": "200",
            },
        )

    status = _run(config, handler, lambda c: c.fetch_status(TOKEN, "trk-9"))

    assert status.order_tracking_id == "trk-9"
    assert status.status_code == 1
    assert status.payment_status_description == "Completed"
    assert status.confirmation_code == "6513008693186320103009"


def test_fetch_status_vendor_error_is_upstream_error(config):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"error": {"error_type": "api_error", "code": "invalid_order_tracking_id", "message": "Invalid id"}},
        )

    with pytest.raises(UpstreamError) as info:
        _run(config, handler, lambda c: c.fetch_status(TOKEN, "bad"))

    assert info.value.vendor_message == "Invalid id"


@pytest.mark.parametrize(
    ("data", "expected"),
    [
        ({"error": None}, None),
        ({"error": {"error_type": None, "code": None, "message": None}}, None),
        ({"error": {"code": "expired_token", "message": ""}}, "expired_token"),
        ({"error": "bad request"}, "bad request"),
        ([{"ipn_id": "x"}], None),
    ],
)
def test_vendor_error(data, expected):
    assert vendor_error(data) == expected


def test_fetch_status_keeps_failed_outcome_with_vendor_error(config):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "payment_method": "Visa",
                "amount": 1000.0,
                "payment_status_description": "Failed",
                "status_code": 2,
                "merchant_reference": "KLB-1-abc",
                "currency": "KES",
                "error": {
                    "error_type": "api_error",
                    "code": "payment_details_not_found",
                    "message": "Pending Payment",
                },
                "status": "500",
            },
        )

    status = _run(config, handler, lambda c: c.fetch_status(TOKEN, "trk-9"))

    assert status.status_code == 2
    assert status.payment_status_description == "Failed"
    assert status.error["code"] == "payment_details_not_found"


def test_fetch_status_list_body_is_upstream_error(config):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"status_code": 1}])

    with pytest.raises(UpstreamError):
        _run(config, handler, lambda c: c.fetch_status(TOKEN, "trk-9"))


def test_submit_order_list_body_is_upstream_error(config):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=["unexpected"])

    with pytest.raises(UpstreamError):
        _run(config, handler, lambda c: c.submit_order(TOKEN, _order()))


def test_malformed_registration_item_is_upstream_error(config):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"url": "https://donate.example.org/api/pesapal/ipn"}])

    with pytest.raises(UpstreamError) as info:
        _run(config, handler, lambda c: c.list_registrations(TOKEN))

    assert "unexpected body" in info.value.message
