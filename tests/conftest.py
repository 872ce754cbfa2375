import pytest

from helpers import make_response, make_session


@pytest.fixture
def stream_session():
    """Factory fixture: build a mock aiohttp session serving the given lines."""
    def _factory(lines=(), status=200, body="", error=None):
        return make_session(make_response(lines, status=status, body=body, error=error))
    return _factory
