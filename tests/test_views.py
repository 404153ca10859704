"""Tests for design-document view queries."""

from __future__ import annotations

import pytest
from sample_models import DB

from couch_mango.database import encode_view_params
from couch_mango.exceptions import CouchProtocolError, DocumentNotFoundError


def by_city(doc):
    if "city" in doc:
        yield doc["city"], 1


@pytest.fixture
def cities(couch):
    couch.put_doc(DB, {"_id": "a", "city": "Athens"})
    couch.put_doc(DB, {"_id": "b", "city": "Berlin"})
    couch.put_doc(DB, {"_id": "c", "city": "Cairo"})
    couch.add_view(DB, "geo", "by_city", by_city)


def test_encode_view_params() -> None:
    assert encode_view_params(
        {"key": "Athens", "keys": ["a", 1], "include_docs": True, "limit": 5}
    ) == {"key": '"Athens"', "keys": '["a", 1]', "include_docs": "true", "limit": 5}


class TestViewDocs:
    @pytest.mark.asyncio
    async def test_key_is_json_encoded(self, connector, cities):
        result = await connector.view_docs("geo", "by_city", {"key": "Berlin"})
        assert result["rows"] == [{"id": "b", "key": "Berlin", "value": 1}]

    @pytest.mark.asyncio
    async def test_range_and_docs(self, connector, cities):
        result = await connector.view_docs(
            "_design/geo",
            "by_city",
            {"startkey": "B", "endkey": "Z", "include_docs": True},
        )
        assert [r["id"] for r in result["rows"]] == ["b", "c"]
        assert result["rows"][0]["doc"]["city"] == "Berlin"

    @pytest.mark.asyncio
    async def test_missing_view(self, connector):
        with pytest.raises(DocumentNotFoundError):
            await connector.view_docs("geo", "nope")

    @pytest.mark.asyncio
    async def test_unexpected_answer(self, connector, monkeypatch):
        async def fake_view(*args, **kwargs):
            return {"total_rows": 0}

        monkeypatch.setattr(connector.database(), "view", fake_view)
        with pytest.raises(CouchProtocolError):
            await connector.view_docs("geo", "by_city")
