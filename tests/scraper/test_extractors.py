"""Tests for detail-page extraction."""

import json
import math

import pytest

from tests.conftest import make_page, state_html
from zameen_finder.scraper.base import ListingRecord
from zameen_finder.scraper.extractors import (
    DetailExtractor,
    JsonLdExtractor,
    MarkupExtractor,
    PageStateExtractor,
    clean_text,
    coalesce,
    finalize_record,
    map_purpose,
    parse_number,
    parse_price_text,
    property_type_from_categories,
    structured_score,
)

DETAIL = "https://www.zameen.com/Property/dha_defence_house-777-3188-3.html"


def property_state(**overrides):
    data = {
        "externalID": "777",
        "title": "Nice House",
        "price": 25000000,
        "rooms": 4,
        "baths": 5,
        "area": 418.06,
        "purpose": "for-sale",
        "location": [
            {"name": "Pakistan", "level": 0},
            {"name": "Islamabad", "level": 2},
            {"name": "DHA Defence", "level": 3},
        ],
        "category": [
            {"slug": "Homes", "level": 0},
            {"slug": "Houses_Property", "level": 1},
        ],
        "description": "<p>Great <b>house</b></p><script>track()</script>",
    }
    data.update(overrides)
    return {"property": {"data": data}}


def json_ld(node) -> str:
    return f'<script type="application/ld+json">{json.dumps(node)}</script>'


class TestFieldHelpers:

    @pytest.mark.parametrize("value,expected", [
        ("1,250", 1250),
        ("PKR 45,000,000", 45000000),
        (3.5, 3.5),
        (4.0, 4),
        ({"value": "12"}, 12),
        ("abc", None),
        (None, None),
        (True, None),
        (math.nan, None),
        (math.inf, None),
    ])
    def test_parse_number(self, value, expected):
        assert parse_number(value) == expected

    def test_parse_price_text_multipliers(self):
        assert parse_price_text("PKR 2.5 Crore") == 25000000
        assert parse_price_text("PKR 85 Lakh") == 8500000
        assert parse_price_text("PKR 1,500,000") == 1500000
        assert parse_price_text(None) is None

    def test_clean_text_drops_scripts(self):
        assert clean_text("<p>Hello <b>there</b></p><script>x()</script>") == "Hello there"
        assert clean_text("") is None

    def test_map_purpose(self):
        assert map_purpose("for-sale") == "sale"
        assert map_purpose("Rent") == "rent"
        assert map_purpose("lease") is None
        assert map_purpose(None) is None

    def test_property_type_from_categories(self):
        assert property_type_from_categories([
            {"slug": "Homes", "level": 0},
            {"slug": "Houses_Property", "level": 1},
        ]) == "houses"
        assert property_type_from_categories([{"name": "Plots"}]) == "plots"
        assert property_type_from_categories("Homes") is None


class TestPageStateExtractor:

    def test_reads_listing_object(self):
        record = PageStateExtractor().extract(make_page(state_html(property_state()), url=DETAIL))

        assert record.external_id == "777"
        assert record.title == "Nice House"
        assert record.price == 25000000
        assert record.bedrooms == 4
        assert record.bathrooms == 5
        assert (record.area, record.area_unit) == (1, "kanal")
        assert record.city == "Islamabad"
        assert record.location == "DHA Defence"
        assert record.property_type == "houses"
        assert record.purpose == "sale"
        assert record.description == "Great house"

    def test_requires_listing_id(self):
        state = property_state()
        del state["property"]["data"]["externalID"]
        assert PageStateExtractor().extract(make_page(state_html(state))) is None

    def test_no_state(self):
        assert PageStateExtractor().extract(make_page("<html></html>")) is None


class TestJsonLdExtractor:

    def test_best_node_is_used(self):
        body = json_ld({"@type": "Organization", "name": "Zameen"}) + json_ld({
            "@type": "Product",
            "name": "Flat for Sale",
            "description": "Corner flat",
            "offers": {"price": "9,500,000", "priceCurrency": "PKR"},
            "floorSize": {"value": 1200, "unitCode": "FTK"},
            "numberOfRooms": 2,
            "address": {"addressLocality": "Lahore"},
        })
        record = JsonLdExtractor().extract(make_page(f"<html><head>{body}</head></html>", url=DETAIL))

        assert record.title == "Flat for Sale"
        assert record.price == 9500000
        assert record.currency == "PKR"
        assert (record.area, record.area_unit) == (1200, "sqft")
        assert record.bedrooms == 2
        assert record.city == "Lahore"

    @pytest.mark.parametrize("floor_size,expected", [
        ({"value": 200, "unitCode": "YDK"}, (1800.0, "sqft")),
        ({"value": 200, "unitText": "sq. yd."}, (1800.0, "sqft")),
        ({"value": 200}, (None, None)),
        ({"value": 200, "unitCode": "XYZ"}, (None, None)),
    ])
    def test_floor_size_units(self, floor_size, expected):
        body = json_ld({"@type": "Product", "name": "Plot", "offers": {"price": 1}, "floorSize": floor_size})
        record = JsonLdExtractor().extract(make_page(body, url=DETAIL))
        assert (record.area, record.area_unit) == expected

    def test_zero_rooms_kept(self):
        body = json_ld({
            "@type": "Product", "name": "Plot", "offers": {"price": 1},
            "numberOfRooms": 0, "numberOfBedrooms": 3,
        })
        assert JsonLdExtractor().extract(make_page(body)).bedrooms == 0

    def test_graph_is_flattened(self):
        body = json_ld({"@graph": [{"@type": "Residence", "name": "Villa", "offers": {"price": 1}}]})
        record = JsonLdExtractor().extract(make_page(body))
        assert record.title == "Villa"

    def test_low_score_rejected(self):
        body = json_ld({"@type": "Organization", "name": "Zameen", "url": "https://www.zameen.com"})
        assert JsonLdExtractor().extract(make_page(body)) is None

    def test_item_lists_not_scored(self):
        body = json_ld({"@type": "ItemList", "name": "Results", "price": 1, "description": "x", "url": "u"})
        assert JsonLdExtractor().extract(make_page(body)) is None

    def test_structured_score(self):
        assert structured_score({"@type": "Product", "name": "a", "offers": [{"price": 1}]}) == 6


class TestMarkupExtractor:

    def test_aria_labels(self):
        body = (
            "<h1>5 Marla House for Sale</h1>"
            '<span aria-label="Price">PKR 2.5 Crore</span>'
            '<span aria-label="Beds">3 Beds</span>'
            '<span aria-label="Baths">4</span>'
            '<span aria-label="Area">5 Marla</span>'
            '<div aria-label="Location">DHA Phase 2, Islamabad</div>'
            '<div aria-label="Property description"><p>Brand new</p></div>'
        )
        record = MarkupExtractor().extract(make_page(body, url=DETAIL))

        assert record.title == "5 Marla House for Sale"
        assert record.price == 25000000
        assert record.bedrooms == 3
        assert record.bathrooms == 4
        assert (record.area, record.area_unit) == (5, "marla")
        assert record.location == "DHA Phase 2, Islamabad"
        assert record.description == "Brand new"
        assert record.external_id == "777"

    def test_empty_page(self):
        page = make_page("<html><body></body></html>", url="https://www.zameen.com/Homes/x-1-1.html")
        assert MarkupExtractor().extract(page) is None


class TestDetailExtractor:

    def test_page_state_wins_over_json_ld(self):
        body = state_html(
            property_state(title="From state"),
            json_ld({"@type": "Product", "name": "From JSON-LD", "description": "d", "offers": {"price": 1}}),
        )
        record = DetailExtractor().extract(make_page(body, url=DETAIL))
        assert record.title == "From state"
        assert record.price == 25000000

    def test_missing_fields_filled_from_lower_sources(self):
        state = property_state(title=None, description=None)
        body = state_html(state, '<h1>Heading title</h1><div class="description">From markup</div>')
        record = DetailExtractor().extract(make_page(body, url=DETAIL))
        assert record.title == "Heading title"
        assert record.description == "From markup"
        assert record.price == 25000000

    def test_partial_ranks_above_markup(self, partial_record):
        page = make_page("<html><body><h1>Markup title</h1></body></html>", url=DETAIL)
        record = DetailExtractor().extract(page, partial_record)
        assert record.title == "X"
        assert record.price == 5000000

    def test_only_partial(self, partial_record):
        page = make_page("<html><body><p>nothing here</p></body></html>", url=DETAIL)
        record = DetailExtractor().extract(page, partial_record)

        assert record.title == "X"
        assert record.price == 5000000
        assert record.description is None
        assert record.currency == "PKR"
        assert record.source == "zameen.com"
        assert record.url == DETAIL

    def test_unitless_json_ld_area_yields_to_markup(self, partial_record):
        body = json_ld({"@type": "Product", "name": "Plot", "offers": {"price": 1}, "floorSize": {"value": 200}})
        markup = '<span aria-label="Area">5 Marla</span>'
        page = make_page(f"<html><head>{body}</head><body>{markup}</body></html>", url=DETAIL)
        record = DetailExtractor().extract(page, partial_record)
        assert (record.area, record.area_unit) == (5, "marla")

    def test_failing_strategy_is_skipped(self, mocker, partial_record):
        broken = mocker.Mock()
        broken.name = "broken"
        broken.extract.side_effect = RuntimeError("boom")
        record = DetailExtractor([broken, MarkupExtractor()]).extract(make_page("<p></p>", url=DETAIL), partial_record)
        assert record.title == "X"


class TestFinalizeRecord:

    def test_defaults(self):
        record = finalize_record(ListingRecord(title="a"), DETAIL + "#photos")
        assert record.currency == "PKR"
        assert record.source == "zameen.com"
        assert record.url == DETAIL

    def test_declared_currency_kept(self):
        assert finalize_record(ListingRecord(currency="USD"), DETAIL).currency == "USD"

    def test_area_without_unit_dropped(self):
        record = finalize_record(ListingRecord(area=200), DETAIL)
        assert (record.area, record.area_unit) == (None, None)

    def test_coalesce_keeps_area_with_unit(self):
        merged = coalesce([
            ListingRecord(area=None, area_unit=None),
            ListingRecord(area=5, area_unit="marla"),
            ListingRecord(area=1, area_unit="kanal"),
        ])
        assert (merged.area, merged.area_unit) == (5, "marla")
