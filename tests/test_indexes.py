"""Unit tests for index candidates, naming and plans."""

from __future__ import annotations

import logging

import pytest
from sample_models import DISCRIMINATOR, customer_definition

from couch_mango.exceptions import CouchProtocolError, CouchValidationError
from couch_mango.indexes import (
    ExistingIndex,
    IndexField,
    build_candidate_indexes,
    coerce_directions,
    index_ddoc_name,
    plan_indexes,
    select_model_indexes,
)


def _fields(*pairs: tuple[str, str]) -> tuple[IndexField, ...]:
    return tuple(IndexField(f, d) for f, d in pairs)


class TestCandidates:
    def test_property_index_shape(self):
        candidates = build_candidate_indexes(customer_definition(), DISCRIMINATOR)
        name_index = candidates["name_index"]
        assert name_index.ddoc == "_design/LBModel__Customer__LBIndex__name_index"
        assert name_index.to_request() == {
            "index": {"fields": [{"name": "asc"}, {DISCRIMINATOR: "asc"}]},
            "ddoc": "LBModel__Customer__LBIndex__name_index",
            "name": "name_index",
            "type": "json",
        }

    def test_discriminator_index(self):
        candidates = build_candidate_indexes(customer_definition(), DISCRIMINATOR)
        assert candidates[f"{DISCRIMINATOR}_index"].fields == _fields((DISCRIMINATOR, "asc"))

    def test_mixed_directions_coerced(self, caplog):
        with caplog.at_level(logging.WARNING, logger="couch_mango.indexes"):
            candidates = build_candidate_indexes(customer_definition(), DISCRIMINATOR)
        assert candidates["name_age_index"].fields == _fields(
            ("name", "asc"), ("age", "asc"), (DISCRIMINATOR, "asc")
        )
        assert "coerced fields: age" in caplog.text

    def test_descending_declaration_keeps_direction(self):
        from couch_mango import ModelDefinition

        definition = ModelDefinition.build(
            "Log", {"at": "date"}, indexes={"recent": {"keys": {"at": -1}}}
        )
        candidates = build_candidate_indexes(definition, DISCRIMINATOR)
        assert candidates["recent"].fields == _fields(("at", "desc"), (DISCRIMINATOR, "desc"))

    def test_no_discriminator_appended_without_one(self):
        candidates = build_candidate_indexes(customer_definition(), None)
        assert candidates["age_index"].fields == _fields(("age", "asc"))
        assert set(candidates) == {"name_index", "age_index", "name_age_index"}

    def test_coerce_single_field_untouched(self):
        fields = _fields(("a", "desc"))
        assert coerce_directions("x", fields) == fields

    def test_bad_direction(self):
        with pytest.raises(CouchValidationError):
            IndexField("a", "up")


class TestExistingIndexes:
    def test_prefix_does_not_claim_other_models(self):
        raw = [
            {"ddoc": None, "name": "_all_docs", "type": "special", "def": {"fields": [{"_id": "asc"}]}},
            {
                "ddoc": "_design/" + index_ddoc_name("Foo", "a_index"),
                "name": "a_index",
                "def": {"fields": [{"a": "asc"}]},
            },
            {
                "ddoc": "_design/" + index_ddoc_name("FooBar", "a_index"),
                "name": "b_index",
                "def": {"fields": [{"b": "asc"}]},
            },
        ]
        existing = select_model_indexes(raw, "Foo")
        assert list(existing) == ["a_index"]
        assert existing["a_index"].fields == _fields(("a", "asc"))

    def test_malformed_field(self):
        with pytest.raises(CouchProtocolError):
            IndexField.from_json({"a": "asc", "b": "asc"})


class TestPlanIndexes:
    @pytest.fixture
    def candidates(self):
        return build_candidate_indexes(customer_definition(), DISCRIMINATOR)

    def _existing(self, candidates, name, fields=None):
        candidate = candidates[name]
        return ExistingIndex(name, candidate.ddoc, fields or candidate.fields)

    def test_unchanged_indexes_left_alone(self, candidates):
        existing = {n: self._existing(candidates, n) for n in candidates}
        assert plan_indexes(candidates, existing, full_rebuild=False).is_empty()

    def test_field_order_does_not_matter(self, candidates):
        reordered = tuple(reversed(candidates["name_index"].fields))
        existing = {n: self._existing(candidates, n) for n in candidates}
        existing["name_index"] = self._existing(candidates, "name_index", reordered)
        assert plan_indexes(candidates, existing, full_rebuild=False).is_empty()

    def test_changed_index_dropped_and_added(self, candidates):
        existing = {n: self._existing(candidates, n) for n in candidates}
        existing["age_index"] = self._existing(
            candidates, "age_index", _fields(("age", "desc"), (DISCRIMINATOR, "desc"))
        )
        plan = plan_indexes(candidates, existing, full_rebuild=False)
        assert list(plan.to_add) == ["age_index"]
        assert list(plan.to_drop) == ["age_index"]

    def test_new_and_orphaned(self, candidates):
        orphan = ExistingIndex("gone_index", "_design/LBModel__Customer__LBIndex__gone_index", ())
        plan = plan_indexes(candidates, {"gone_index": orphan}, full_rebuild=False)
        assert set(plan.to_add) == set(candidates)
        assert list(plan.to_drop) == ["gone_index"]

    def test_full_rebuild(self, candidates):
        existing = {n: self._existing(candidates, n) for n in candidates}
        plan = plan_indexes(candidates, existing, full_rebuild=True)
        assert set(plan.to_add) == set(candidates)
        assert set(plan.to_drop) == set(candidates)
