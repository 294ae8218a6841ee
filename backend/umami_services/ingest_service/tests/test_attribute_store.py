"""
Tests for typed attributes and attribution parsing.
"""

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from umami_common.database import quantize_decimal
from umami_common.exceptions import InvalidInput, TypeInvariantViolation
from umami_services.ingest_service.services.attribute_store import AttributeValue, DataType, flatten
from umami_services.ingest_service.services.attribution import parse_attribution


class TestClassification:
    """Tests for classifying payload values into the tagged union."""

    @pytest.mark.parametrize(
        "value,data_type,slot",
        [
            ("pro", DataType.STRING, "string_value"),
            (3, DataType.NUMBER, "number_value"),
            (2.5, DataType.NUMBER, "number_value"),
            (True, DataType.BOOLEAN, "string_value"),
            (datetime(2024, 3, 4, 10, 0, tzinfo=UTC), DataType.DATE, "date_value"),
            (date(2024, 3, 4), DataType.DATE, "date_value"),
            ("2024-03-04T10:00:00Z", DataType.DATE, "date_value"),
            (["a", 1], DataType.ARRAY, "string_value"),
        ],
    )
    def test_value_populates_the_slot_of_its_type(self, value, data_type, slot):
        attribute = AttributeValue.of(value)

        assert attribute.data_type == data_type
        assert getattr(attribute, slot) is not None
        attribute.validate()

    def test_boolean_is_stored_as_text(self):
        assert AttributeValue.of(False).string_value == "false"
        assert AttributeValue.of(True).value is True

    def test_short_date_like_strings_stay_strings(self):
        assert AttributeValue.of("2024").data_type == DataType.STRING
        assert AttributeValue.of("2024-03-04").data_type == DataType.STRING

    def test_array_is_json_encoded(self):
        attribute = AttributeValue.of(["a", 1])

        assert attribute.string_value == '["a",1]'
        assert attribute.value == ["a", 1]

    def test_unsupported_value_is_rejected(self):
        with pytest.raises(InvalidInput):
            AttributeValue.of(object(), "thing")


class TestNumbers:
    """Tests for fixed-point number handling."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (Decimal("2.00015"), Decimal("2.0002")),
            (Decimal("2.00005"), Decimal("2.0000")),
            (10.005, Decimal("10.0050")),
            (7, Decimal("7.0000")),
        ],
    )
    def test_numbers_are_quantized_to_four_places(self, value, expected):
        assert quantize_decimal(value) == expected
        assert AttributeValue.of(value).number_value == expected

    @pytest.mark.parametrize("value", [10**15, float("nan"), float("inf"), Decimal("-Infinity")])
    def test_unstorable_numbers_are_rejected(self, value):
        with pytest.raises(InvalidInput):
            AttributeValue.of(value, "amount")

    def test_largest_storable_number_is_accepted(self):
        assert AttributeValue.of(10**15 - 1).number_value == Decimal("999999999999999.0000")


class TestValidation:
    """Tests for the discriminant/slot invariant."""

    def test_number_with_string_slot_is_a_violation(self):
        with pytest.raises(TypeInvariantViolation):
            AttributeValue(DataType.NUMBER, string_value="3").validate()

    def test_two_populated_slots_are_a_violation(self):
        with pytest.raises(TypeInvariantViolation):
            AttributeValue(DataType.STRING, string_value="x", number_value=Decimal(1)).validate()

    def test_empty_value_is_a_violation(self):
        with pytest.raises(TypeInvariantViolation):
            AttributeValue(DataType.DATE).validate()

    def test_boolean_must_be_true_or_false(self):
        with pytest.raises(TypeInvariantViolation):
            AttributeValue(DataType.BOOLEAN, string_value="yes").validate()

    def test_unknown_data_type_is_a_violation(self):
        with pytest.raises(TypeInvariantViolation):
            AttributeValue(9, string_value="x").validate()


class TestFlatten:
    """Tests for flattening payloads into attribute pairs."""

    def test_nested_keys_are_dotted(self):
        pairs = flatten({"plan": "pro", "meta": {"trial": True, "source": {"name": "ad"}}, "skip": None})

        assert [key for key, _ in pairs] == ["plan", "meta.trial", "meta.source.name"]

    def test_empty_payload_has_no_pairs(self):
        assert flatten(None) == []
        assert flatten({}) == []

    def test_invalid_value_fails_the_whole_payload(self):
        with pytest.raises(InvalidInput):
            flatten({"ok": 1, "bad": float("nan")})

    def test_long_keys_are_truncated(self):
        [(key, _)] = flatten({"k" * 600: "v"})

        assert len(key) == 500


class TestAttribution:
    """Tests for URL and referrer parsing."""

    def test_campaign_parameters_are_extracted(self):
        attribution = parse_attribution("/landing?utm_source=news&utm_campaign=spring&fbclid=xyz")

        assert attribution.url_path == "/landing"
        assert attribution.campaign == {"utm_source": "news", "utm_campaign": "spring", "fbclid": "xyz"}
        columns = attribution.as_columns()
        assert columns["utm_medium"] is None
        assert columns["fbclid"] == "xyz"

    def test_referrer_is_split(self):
        attribution = parse_attribution(
            "https://blog.example.com/", referrer="https://news.ycombinator.com/item?id=1"
        )

        assert attribution.referrer_domain == "news.ycombinator.com"
        assert attribution.referrer_path == "/item"
        assert attribution.referrer_query == "id=1"

    def test_referral_from_configured_domain_is_dropped(self):
        attribution = parse_attribution(
            "/", referrer="https://blog.example.com/other", site_domain="www.blog.example.com"
        )

        assert attribution.referrer_domain is None

    def test_empty_path_becomes_root(self):
        assert parse_attribution("https://blog.example.com").url_path == "/"

    @pytest.mark.parametrize("url", [None, "", "   "])
    def test_missing_url_is_rejected(self, url):
        with pytest.raises(InvalidInput):
            parse_attribution(url)

    @pytest.mark.parametrize(
        ("url", "referrer", "field"),
        [
            ("http://[broken/page", None, "url"),
            ("/page", "http://[broken", "referrer"),
        ],
    )
    def test_unparseable_url_is_rejected(self, url, referrer, field):
        with pytest.raises(InvalidInput) as exc_info:
            parse_attribution(url, referrer=referrer)

        assert exc_info.value.context["field"] == field
