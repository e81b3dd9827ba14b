import json
from unittest.mock import Mock

import pytest
import requests

from purchase_watcher.errors import DeliveryError
from purchase_watcher.model import PurchaseRecord
from purchase_watcher.sender import JSON_HEADERS, HttpSender

URL = "http://localhost:8080/update"


def _session(status_code=200):
    session = Mock(spec=requests.Session)
    session.post.return_value = Mock(status_code=status_code)
    return session


def test_send_posts_json_array():
    session = _session()
    sender = HttpSender(URL, timeout=5.0, session=session)
    records = [PurchaseRecord(registry_number="1", region="Москва", status="идем")]

    assert sender.send(records) == 200

    session.post.assert_called_once()
    args, kwargs = session.post.call_args
    assert args == (URL,)
    assert kwargs["headers"] == JSON_HEADERS
    assert kwargs["timeout"] == 5.0
    payload = json.loads(kwargs["data"].decode("utf-8"))
    assert payload[0]["registry_number"] == "1"
    assert payload[0]["region"] == "Москва"


def test_sender_is_callable():
    session = _session(204)
    sender = HttpSender(URL, session=session)

    assert sender([]) == 204
    assert session.post.call_args.kwargs["data"] == b"[]"


@pytest.mark.parametrize("status_code", [400, 404, 500, 503])
def test_non_success_status_is_a_delivery_error(status_code):
    sender = HttpSender(URL, session=_session(status_code))

    with pytest.raises(DeliveryError) as exc_info:
        sender.send([PurchaseRecord(registry_number="1")])
    assert str(status_code) in str(exc_info.value)


def test_transport_failure_is_a_delivery_error():
    session = _session()
    session.post.side_effect = requests.ConnectionError("connection refused")
    sender = HttpSender(URL, session=session)

    with pytest.raises(DeliveryError) as exc_info:
        sender.send([PurchaseRecord(registry_number="1")])
    assert isinstance(exc_info.value.__cause__, requests.ConnectionError)


def test_close_closes_session():
    session = _session()
    HttpSender(URL, session=session).close()

    session.close.assert_called_once_with()
