import pytest
import requests

from gatsishub.client import NETWORK_ERROR, ClientError, GatsisHubClient


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp

    def close(self):
        self.closed = True


def _client(*responses, user={"id": "cust-1"}):
    session = FakeSession(*responses)
    return GatsisHubClient("http://api.test/", user=user, session=session), session


def _order(status, **kw):
    data = {"id": "o-1", "status": status, "contract_signed": False, "requires_contract_amendment": False}
    data.update(kw)
    return data


def test_list_orders_uses_signed_in_customer():
    client, session = _client(FakeResponse(body={"orders": [], "pagination": {"page": 2}}))
    client.list_orders(page=2, limit=5, full=True)
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("GET", "http://api.test/orders/user/cust-1/full")
    assert kwargs["params"] == {"page": 2, "limit": 5}
    assert kwargs["timeout"] == 10


def test_customer_calls_require_a_user():
    client, session = _client(user=None)
    with pytest.raises(ClientError, match="signed in"):
        client.list_orders()
    assert session.calls == []


def test_logout_clears_user_and_session():
    client, session = _client()
    client.logout()
    assert client.user is None
    assert session.closed
    assert client.session is not session


def test_network_failure_is_reported_plainly():
    client, _ = _client(requests.ConnectionError("refused"))
    with pytest.raises(ClientError) as exc:
        client.get_order("o-1")
    assert exc.value.message == NETWORK_ERROR
    assert exc.value.status_code is None


def test_server_error_message_is_surfaced():
    client, _ = _client(FakeResponse(400, {"error": "Order cannot be cancelled at this stage",
                                           "details": {"current_status": "In Production"}}))
    with pytest.raises(ClientError) as exc:
        client.get_order("o-1")
    assert exc.value.status_code == 400
    assert exc.value.message == "Order cannot be cancelled at this stage"
    assert exc.value.details == {"current_status": "In Production"}


def test_non_json_error_body():
    client, _ = _client(FakeResponse(502))
    with pytest.raises(ClientError, match="status 502"):
        client.get_order("o-1")


def test_cancel_sends_delete_when_allowed():
    client, session = _client(
        FakeResponse(body={"order": _order("For Evaluation")}),
        FakeResponse(body={"message": "Order cancelled successfully"}),
    )
    client.cancel_order("o-1", reason="Changed plans")
    method, url, kwargs = session.calls[1]
    assert (method, url) == ("DELETE", "http://api.test/orders/o-1")
    assert kwargs["json"] == {"reason": "Changed plans"}


def test_cancel_refused_locally_when_not_offered():
    client, session = _client(FakeResponse(body={"order": _order("In Production", contract_signed=True)}))
    with pytest.raises(ClientError, match="cannot be cancelled"):
        client.cancel_order("o-1")
    assert len(session.calls) == 1


def test_blank_signature_never_reaches_server(blank_signature, signature):
    client, session = _client()
    with pytest.raises(ClientError, match="Please provide your signature"):
        client.sign_contract(_order("Contract Signing"), blank_signature, True)
    with pytest.raises(ClientError, match="agreement box"):
        client.sign_contract(_order("Contract Signing"), signature, False)
    assert session.calls == []


def test_sign_contract_posts_signature(signature):
    client, session = _client(FakeResponse(body={"message": "Contract signed successfully"}))
    client.sign_contract(_order("Contract Signing"), signature, True)
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("PATCH", "http://api.test/orders/o-1/sign-contract")
    assert kwargs["json"] == {"signature": signature, "agreed": True}


def test_submit_payment_is_multipart():
    client, session = _client(FakeResponse(201, {"message": "Payment submitted successfully"}))
    client.submit_payment("o-1", "GCash", b"png", transaction_reference="REF-1", notes=None)
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "http://api.test/payments/submit")
    assert kwargs["data"] == {
        "order_id": "o-1", "payment_method": "GCash", "customer_id": "cust-1", "transaction_reference": "REF-1",
    }
    assert kwargs["files"]["proof_of_payment"] == ("proof.png", b"png", "image/png")


def test_feedback_rating_checked_locally():
    client, session = _client()
    with pytest.raises(ClientError, match="between 1 and 5"):
        client.submit_feedback("o-1", 6, "Great")
    assert session.calls == []
