import inspect

import pytest

from load_types import Endpoints


class FakeTransport:
    """In-memory transport: records every call and answers via a responder.

    The responder receives (method, url, payload) and returns
    (status, body), raises, or returns an awaitable producing (status, body).
    """

    def __init__(self, responder=None):
        self.calls = []
        self.responder = responder or (lambda method, url, payload: (200, b""))

    async def send(self, method, url, user_id, payload=None):
        self.calls.append((method, url, user_id, payload))
        result = self.responder(method, url, payload)
        if inspect.isawaitable(result):
            result = await result
        return result


@pytest.fixture
def endpoints() -> Endpoints:
    return Endpoints(
        petlistadoptions="http://list.test/api/adoptionlist/",
        petsearch="http://search.test/api/search",
        payforadoption="http://pay.test/api/completeadoption",
        petfood="http://food.test/api/foods",
        petfoodcart="http://cart.test",
    )


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()
