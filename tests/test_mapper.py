"""Unit tests for CouchDocumentMapper."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

import pytest
from pydantic import BaseModel
from sample_models import DISCRIMINATOR

from couch_mango.exceptions import CouchPersistenceError, MalformedDocumentError
from couch_mango.mapper import CouchDocumentMapper

JOINED = datetime(2020, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


class CustomerModel(BaseModel):
    id: int
    name: str


@pytest.fixture
def mapper() -> CouchDocumentMapper:
    return CouchDocumentMapper(
        "Customer",
        id_name="id",
        id_is_numeric=True,
        date_fields=["joined"],
        discriminator=DISCRIMINATOR,
    )


class TestToDoc:
    def test_reserved_fields(self, mapper):
        doc = mapper.to_doc({"id": 7, "name": "Ann", "vip": None, "joined": JOINED})
        assert doc == {
            "_id": "7",
            "name": "Ann",
            "joined": "2020-01-02T03:04:05+00:00",
            DISCRIMINATOR: "Customer",
        }

    def test_explicit_none_id_is_left_to_the_store(self, mapper):
        assert mapper.to_doc({"id": None, "name": "x"}) == {
            "name": "x",
            DISCRIMINATOR: "Customer",
        }

    def test_values_made_json_safe(self, mapper):
        ref = UUID("12345678-1234-5678-1234-567812345678")
        doc = mapper.to_doc({"id": 1, "price": Decimal("1.5"), "refs": [ref]})
        assert doc["price"] == 1.5
        assert doc["refs"] == ["12345678-1234-5678-1234-567812345678"]

    def test_pydantic_instance(self, mapper):
        assert mapper.to_doc(CustomerModel(id=1, name="n")) == {
            "_id": "1",
            "name": "n",
            DISCRIMINATOR: "Customer",
        }

    def test_no_discriminator_for_custom_selector_models(self):
        mapper = CouchDocumentMapper("Customer", discriminator=None)
        assert mapper.to_doc({"id": "a"}) == {"_id": "a"}

    def test_rejects_other_types(self, mapper):
        with pytest.raises(CouchPersistenceError):
            mapper.to_doc(["id", 1])


class TestFromDoc:
    def test_round_trip(self, mapper):
        data = {"id": 7, "name": "Ann", "joined": JOINED}
        assert mapper.from_doc(mapper.to_doc(data)) == data

    def test_calendar_date_round_trip(self, mapper):
        data = {"id": 7, "joined": date(2021, 5, 1)}
        doc = mapper.to_doc(data)
        assert doc["joined"] == "2021-05-01"
        restored = mapper.from_doc(doc)
        assert restored == data
        assert type(restored["joined"]) is date

    def test_revision_kept(self, mapper):
        result = mapper.from_doc({"_id": "3", "_rev": "1-a", DISCRIMINATOR: "Customer"})
        assert result == {"id": 3, "_rev": "1-a"}

    def test_string_id_model(self):
        mapper = CouchDocumentMapper("Product", id_name="sku")
        assert mapper.from_doc({"_id": "007"}) == {"sku": "007"}

    def test_projection_without_id(self, mapper):
        assert mapper.from_doc({"_id": "7", "name": "A"}, fields=["name"]) == {"name": "A"}

    def test_missing_id(self, mapper):
        with pytest.raises(MalformedDocumentError):
            mapper.from_doc({"name": "A"})

    def test_bad_date(self, mapper):
        with pytest.raises(MalformedDocumentError, match="joined"):
            mapper.from_doc({"_id": "1", "joined": "not a date"})
