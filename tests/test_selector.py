"""Unit tests for CouchSelectorBuilder."""

from __future__ import annotations

import re

import pytest
from sample_models import DB, DISCRIMINATOR, customer_definition

from couch_mango.database import CouchDatabase
from couch_mango.exceptions import CouchQueryError
from couch_mango.model_handle import ModelHandle
from couch_mango.selector import CouchSelectorBuilder, excluded_fields, resolve_path


@pytest.fixture
def builder() -> CouchSelectorBuilder:
    return CouchSelectorBuilder()


class TestBuildSelector:
    """Where-filter translation for a discriminated model."""

    def test_empty_where_constrains_model(self, builder, offline_handle):
        assert builder.build_selector(offline_handle, None) == {DISCRIMINATOR: "Customer"}

    def test_literal_equality(self, builder, offline_handle):
        assert builder.build_selector(offline_handle, {"name": "Ann"}) == {
            DISCRIMINATOR: "Customer",
            "name": "Ann",
        }

    def test_id_renamed_and_stringified(self, builder, offline_handle):
        assert builder.build_selector(offline_handle, {"id": 5}) == {
            DISCRIMINATOR: "Customer",
            "_id": "5",
        }

    def test_id_operator_values_stringified(self, builder, offline_handle):
        selector = builder.build_selector(offline_handle, {"id": {"inq": [1, 2]}})
        assert selector["_id"] == {"$in": ["1", "2"]}

    def test_logical_branches_without_discriminator(self, builder, offline_handle):
        where = {"or": [{"name": "a"}, {"age": {"gt": 3}}]}
        assert builder.build_selector(offline_handle, where) == {
            DISCRIMINATOR: "Customer",
            "$or": [{"name": "a"}, {"age": {"$gt": 3}}],
        }

    def test_operators_on_one_field_are_merged(self, builder, offline_handle):
        selector = builder.build_selector(offline_handle, {"age": {"gt": 1, "lt": 5}})
        assert selector["age"] == {"$gt": 1, "$lt": 5}

    def test_between(self, builder, offline_handle):
        selector = builder.build_selector(offline_handle, {"age": {"between": [18, 30]}})
        assert selector["age"] == {"$gte": 18, "$lte": 30}

    def test_regex_adds_id_constraint(self, builder, offline_handle):
        where = {"name": {"like": "^A", "options": "i"}}
        assert builder.build_selector(offline_handle, where) == {
            DISCRIMINATOR: "Customer",
            "name": {"$regex": "(?i)^A"},
            "_id": {"$gt": None},
        }

    def test_nor_branches(self, builder, offline_handle):
        where = {"nor": [{"vip": True}, {"age": {"lt": 18}}]}
        assert builder.build_selector(offline_handle, where) == {
            DISCRIMINATOR: "Customer",
            "$nor": [{"vip": True}, {"age": {"$lt": 18}}],
        }

    def test_nlike_adds_id_constraint(self, builder, offline_handle):
        assert builder.build_selector(offline_handle, {"name": {"nlike": "x"}}) == {
            DISCRIMINATOR: "Customer",
            "name": {"$regex": "[^x]"},
            "_id": {"$gt": None},
        }

    def test_regex_keeps_existing_id_constraint(self, builder, offline_handle):
        selector = builder.build_selector(
            offline_handle, {"name": {"like": "a"}, "id": 3}
        )
        assert selector["_id"] == "3"

    def test_regexp_compiled_pattern(self, builder, offline_handle):
        where = {"name": {"regexp": re.compile("^jo", re.IGNORECASE)}}
        selector = builder.build_selector(offline_handle, where)
        assert selector["name"] == {"$regex": "(?i)^jo"}

    def test_nested_array_path_gets_elem_match(self, builder, offline_handle):
        selector = builder.build_selector(offline_handle, {"address.tags.tag": "vip"})
        assert selector == {
            DISCRIMINATOR: "Customer",
            "address": {"tags": {"$elemMatch": {"tag": "vip"}}},
        }

    def test_nested_paths_share_head_key(self, builder, offline_handle):
        where = {"address.street": "Main", "address.tags.weight": {"gt": 2}}
        selector = builder.build_selector(offline_handle, where)
        assert selector["address"] == {
            "street": "Main",
            "tags": {"$elemMatch": {"weight": {"$gt": 2}}},
        }

    def test_unknown_path_kept_verbatim(self, builder, offline_handle):
        selector = builder.build_selector(offline_handle, {"meta.source": "web"})
        assert selector["meta.source"] == "web"

    def test_discriminator_collision_wrapped_in_and(self, builder, offline_handle):
        selector = builder.build_selector(offline_handle, {DISCRIMINATOR: "Other"})
        assert selector == {
            "$and": [{DISCRIMINATOR: "Customer"}, {DISCRIMINATOR: "Other"}]
        }

    def test_custom_model_selector_replaces_discriminator(self, builder):
        handle = ModelHandle(
            customer_definition(), CouchDatabase(None, DB), None, {"kind": "customer"}  # type: ignore[arg-type]
        )
        assert builder.build_selector(handle, {"name": "a"}) == {
            "kind": "customer",
            "name": "a",
        }

    def test_malformed_where_rejected(self, builder, offline_handle):
        with pytest.raises(CouchQueryError):
            builder.build_selector(offline_handle, {"and": "nope"})


class TestResolvePath:
    def test_object_path(self):
        assert resolve_path(customer_definition(), "address.street") == "address.street"

    def test_explicit_elem_match_segment(self):
        assert (
            resolve_path(customer_definition(), "address.tags.$elemMatch.tag")
            == "address.tags.$elemMatch.tag"
        )

    def test_undeclared_segment(self):
        assert resolve_path(customer_definition(), "address.zip") is None


class TestBuildSort:
    def test_order_string(self, builder, offline_handle):
        assert builder.build_sort(offline_handle, "age DESC, name") == [
            {"age": "desc"},
            {"name": "asc"},
        ]

    def test_id_renamed(self, builder, offline_handle):
        assert builder.build_sort(offline_handle, ["id desc"]) == [{"_id": "desc"}]

    def test_no_order(self, builder, offline_handle):
        assert builder.build_sort(offline_handle, None) is None

    def test_bad_order(self, builder, offline_handle):
        with pytest.raises(CouchQueryError):
            builder.build_sort(offline_handle, 5)  # type: ignore[arg-type]


class TestBuildFields:
    def test_list_always_includes_id(self, builder, offline_handle):
        assert builder.build_fields(offline_handle, ["name", "id"]) == ["name", "_id"]

    def test_mapping_form(self, builder, offline_handle):
        assert builder.build_fields(offline_handle, {"name": True, "age": False}) == [
            "name",
            "_id",
        ]

    def test_no_projection(self, builder, offline_handle):
        assert builder.build_fields(offline_handle, None) is None

    def test_exclusion_mapping_requests_whole_documents(self, builder, offline_handle):
        assert builder.build_fields(offline_handle, {"name": False}) is None
        assert excluded_fields({"name": False, "id": False}) == ["name", "id"]
        assert excluded_fields({"name": True, "age": False}) == []
        assert excluded_fields(["name"]) == []
