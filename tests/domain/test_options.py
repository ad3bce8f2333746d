from app.domain.options import (
    META_KEY,
    ROOT_KEY,
    normalize_selected_options,
    options_total_cents,
    strip_internal_keys,
)

CATALOG = [
    {
        "id": "salsa",
        "name": "Salsa",
        "options": [
            {"id": "mild", "name": "Mild", "price": 0},
            {"id": "hot", "name": "Hot", "price": 0.5},
        ],
    },
    {"id": "extras", "name": "Extras", "options": [{"id": "guac", "name": "Guacamole", "price_cents": 175}]},
]


class TestNormalizeSelectedOptions:
    def test_records_resolved_against_catalog(self):
        normalized = normalize_selected_options({"salsa": "hot", "extras": [{"id": "guac", "quantity": 2}]}, CATALOG)
        assert normalized["salsa"] == [{"id": "hot", "name": "Hot", "price": 0.5, "price_cents": 50, "quantity": 1}]
        assert normalized["extras"][0]["price_cents"] == 175
        assert normalized["extras"][0]["quantity"] == 2
        assert normalized[META_KEY]["salsa"]["name"] == "Salsa"

    def test_assignment_metadata_is_dropped(self):
        normalized = normalize_selected_options({"salsa": "mild", "__assignment__": {"member_ids": ["x"]}}, CATALOG)
        assert "__assignment__" not in normalized

    def test_already_normalized_passes_through_without_internal_keys(self):
        raw = {"salsa": [{"id": "mild"}], META_KEY: {"salsa": {}}, "__assignment__": {}}
        normalized = normalize_selected_options(raw)
        assert set(normalized) == {"salsa", META_KEY}

    def test_list_selection_kept_under_root(self):
        assert normalize_selected_options(["a", "b"]) == {ROOT_KEY: ["a", "b"]}

    def test_unknown_option_keeps_raw_values(self):
        normalized = normalize_selected_options({"side": [{"id": "chips", "name": "Chips", "price": "1.25"}]})
        assert normalized["side"][0]["name"] == "Chips"
        assert normalized["side"][0]["price_cents"] == 125


class TestHelpers:
    def test_total_cents(self):
        normalized = normalize_selected_options({"salsa": "hot", "extras": [{"id": "guac", "quantity": 2}]}, CATALOG)
        assert options_total_cents(normalized) == 50 + 2 * 175

    def test_strip_internal_keys(self):
        assert strip_internal_keys({"a": 1, "__x": 2, META_KEY: 3}) == {"a": 1, META_KEY: 3}
        assert strip_internal_keys(None) == {}

    def test_normalized_input_loses_internal_keys(self):
        normalized = normalize_selected_options({"salsa": "hot"}, CATALOG)
        normalized["__assignment__"] = {"member_ids": ["x"]}
        again = normalize_selected_options(normalized, CATALOG)
        assert "__assignment__" not in again
        assert again[META_KEY] == normalized[META_KEY]
        assert again["salsa"] == normalized["salsa"]
