"""Tests for API key verification."""

from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from src.dolor.web.auth import _extract_api_key, make_api_key_dependency


def _request(*, headers=None, query=None):
    return SimpleNamespace(headers=headers or {}, query_params=query or {})


class TestExtract:

    def test_header_preferred(self):
        req = _request(headers={"x-api-key": "h"}, query={"api_key": "q"})
        assert _extract_api_key(req) == "h"

    def test_query_param(self):
        assert _extract_api_key(_request(query={"api_key": "q"})) == "q"

    def test_missing(self):
        assert _extract_api_key(_request()) is None


class TestVerify:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["", None])
    async def test_open_when_unconfigured(self, key):
        await make_api_key_dependency(key)(_request())

    def test_warns_once_per_app_when_unconfigured(self, caplog):
        with caplog.at_level("WARNING", logger="src.dolor.web.auth"):
            make_api_key_dependency("")
            make_api_key_dependency("k")
        assert len(caplog.records) == 1

    @pytest.mark.asyncio
    async def test_accepts_matching_key(self):
        verify = make_api_key_dependency("k")
        await verify(_request(headers={"x-api-key": "k"}))
        await verify(_request(query={"api_key": "k"}))

    @pytest.mark.asyncio
    async def test_rejects_wrong_or_missing_key(self):
        verify = make_api_key_dependency("k")
        with pytest.raises(HTTPException) as exc:
            await verify(_request(headers={"x-api-key": "bad"}))
        assert exc.value.status_code == 401
        with pytest.raises(HTTPException):
            await verify(_request())

