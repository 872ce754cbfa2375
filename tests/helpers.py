from unittest.mock import AsyncMock, MagicMock

HEARTBEAT_LINE = b'{"type":"HEARTBEAT","time":"2024-01-01T00:00:00.123456789Z"}\n'

PRICE_LINE = (
    b'{"instrument":"EUR_USD","time":"2024-01-01T00:00:00Z",'
    b'"closeoutAsk":"1.10050","closeoutBid":"1.10030","status":"tradeable",'
    b'"asks":[{"price":"1.10050","liquidity":"1000000"}],'
    b'"bids":[{"price":"1.10030","liquidity":"1000000"}]}\n'
)


class AsyncContextManagerMock:
    """Helper class to mock async context managers."""
    def __init__(self, return_value=None):
        self.return_value = return_value or MagicMock()

    async def __aenter__(self):
        return self.return_value

    async def __aexit__(self, *args):
        return None


class FakeStreamContent:
    """Stands in for aiohttp's StreamReader; each item is one chunk, b"" at end of stream."""
    def __init__(self, chunks, error=None):
        self._chunks = list(chunks)
        self._error = error

    async def readany(self):
        if self._chunks:
            return self._chunks.pop(0)
        if self._error is not None:
            raise self._error
        return b""


def make_response(lines=(), status=200, body="", error=None):
    response = MagicMock()
    response.status = status
    response.text = AsyncMock(return_value=body)
    response.content = FakeStreamContent(lines, error=error)
    return response


def make_session(response):
    session = MagicMock()
    session.get = MagicMock(return_value=AsyncContextManagerMock(response))
    session.close = AsyncMock()
    return session


