"""
Tests for the company registry source: filtering, pagination and normalization.
"""

from unittest.mock import MagicMock

import pytest
import requests

from entities.entity_models import ClassificationEntry
from ingestion.errors import SourceError
from ingestion.registry_source import (
    RegistrySource,
    business_description,
    compose_address,
    current_name,
    extract_business_id,
    registration_year,
)
from conftest import json_response, make_company


def make_source(pages, classifications=None, **kwargs):
    session = MagicMock()
    session.get.side_effect = [json_response(page) for page in pages]
    cache = MagicMock()
    cache.get_classifications.return_value = classifications or {}
    translator = MagicMock()
    translator.translate.side_effect = lambda text: f"EN({text})"
    sleep = MagicMock()
    source = RegistrySource(cache, translator, session=session, sleep=sleep, **kwargs)
    return source, session, sleep


def full_page(prefix, count=100, **company_kwargs):
    return [make_company(business_id=f"{prefix}-{i}", **company_kwargs) for i in range(count)]


# =====================
# Field extraction
# =====================

def test_address_without_entrance_or_apartment():
    address = {
        "street": "Mannerheimintie",
        "buildingNumber": "10",
        "postCode": "00100",
        "postOffices": [{"city": "Helsinki", "languageCode": "3"}],
    }
    assert compose_address(address) == "Mannerheimintie10, 00100 Helsinki"


def test_address_with_all_parts():
    address = {
        "street": "Aleksanterinkatu",
        "buildingNumber": "5",
        "entrance": "B",
        "apartmentNumber": "12",
        "postCode": "33100",
        "postOffices": [{"city": "TAMPERE", "languageCode": "1"}],
    }
    assert compose_address(address) == "Aleksanterinkatu5 B 12, 33100 TAMPERE"


def test_address_with_missing_parts_has_no_stray_punctuation():
    assert compose_address({"postOffices": [{"city": "Oulu", "languageCode": "1"}]}) == "Oulu"
    assert compose_address({"street": "Kauppatori", "city": None}) == "Kauppatori"
    assert compose_address({"street": "Kauppatori", "postOffices": [{"city": "Oulu"}]}) == "Kauppatori, Oulu"
    assert compose_address(None) == ""


def test_english_city_is_preferred():
    address = make_company()["addresses"][0]
    assert compose_address(address).endswith("00100 Helsinki")


def test_active_name_is_preferred():
    company = {"names": [
        {"name": "Old Name Oy", "type": "1", "endDate": "2022-01-01"},
        {"name": "Aputoiminimi", "type": "3"},
        {"name": "Current Name Oy", "type": "1"},
    ]}
    assert current_name(company) == "Current Name Oy"


def test_first_name_is_used_without_active_name():
    assert current_name({"names": [{"name": "Only Name", "type": "3", "endDate": "2020-01-01"}]}) == "Only Name"
    assert current_name({"names": []}) == "Unknown"


def test_english_description_is_preferred():
    assert business_description(make_company()) == "Computer programming"
    company = make_company()
    company["mainBusinessLine"]["descriptions"] = [{"languageCode": "1", "description": "Kuvaus"}]
    assert business_description(company) == "Kuvaus"


def test_business_id_in_flat_and_nested_shapes():
    assert extract_business_id({"businessId": {"value": "1234567-8"}}) == "1234567-8"
    assert extract_business_id({"businessId": "1234567-8"}) == "1234567-8"
    assert extract_business_id({}) == ""


def test_registration_year_from_either_shape():
    assert registration_year(make_company(registration_date="2023-02-01")) == 2023
    assert registration_year({"registrationDate": "2019-12-31"}) == 2019
    assert registration_year({"registrationDate": "garbage"}) == 0
    assert registration_year({}) == 0


# =====================
# Filtering and pagination
# =====================

def test_records_must_be_recent_and_classified():
    source, _, _ = make_source([])
    assert source.matches(make_company())
    assert not source.matches(make_company(registration_date="2019-06-30"))
    assert not source.matches(make_company(industry_code=""))
    assert not source.matches(make_company(business_id=""))


def test_stops_when_target_is_reached():
    source, session, sleep = make_source([full_page("a"), full_page("b"), full_page("c")])

    raw = source.fetch_raw(150)

    assert len(raw) == 150
    assert session.get.call_count == 2
    sleep.assert_called_once_with(0.2)
    assert session.get.call_args_list[1].kwargs["params"] == {
        "page": 2, "registrationDateStart": "2020-01-01",
    }


def test_stops_on_short_page():
    source, session, _ = make_source([full_page("a"), full_page("b", count=30), full_page("c")])

    raw = source.fetch_raw(500)

    assert len(raw) == 130
    assert session.get.call_count == 2


def test_stops_on_empty_page():
    source, session, _ = make_source([full_page("a"), {"totalResults": 100, "companies": []}])

    assert len(source.fetch_raw(500)) == 100
    assert session.get.call_count == 2


def test_stops_at_page_ceiling():
    pages = [full_page(str(i), registration_date="2010-01-01") for i in range(5)]
    source, session, sleep = make_source(pages, max_pages=3)

    assert source.fetch_raw(10) == []
    assert session.get.call_count == 3
    assert sleep.call_count == 2


def test_filtered_records_only_count_towards_target():
    page = full_page("old", count=60, registration_date="2015-01-01") + full_page("new", count=40)
    source, session, _ = make_source([page, full_page("more")])

    raw = source.fetch_raw(50)

    assert len(raw) == 50
    assert session.get.call_count == 2
    assert extract_business_id(raw[0]) == "new-0"


def test_listing_error_is_fatal():
    session = MagicMock()
    session.get.side_effect = requests.ConnectionError("down")
    source = RegistrySource(MagicMock(), MagicMock(), session=session, sleep=MagicMock())

    with pytest.raises(SourceError):
        source.fetch(10)


def test_unexpected_payload_is_fatal():
    source, _, _ = make_source([{"error": "nope"}])
    with pytest.raises(SourceError):
        source.fetch(10)


# =====================
# Normalization
# =====================

def test_industry_label_resolution():
    classifications = {
        "62010": ClassificationEntry(code="62010", label="Computer programming", is_source_language=False),
        "43210": ClassificationEntry(code="43210", label="Sähköasennus", is_source_language=True),
    }
    source, _, _ = make_source([], classifications=classifications)

    assert source.industry_label("62010") == "Computer programming"
    assert source.industry_label("43210") == "EN(Sähköasennus)"
    assert source.industry_label("01110") == "Industry Code: 01110"
    assert source.industry_label("") == ""


def test_fetch_normalizes_matching_records():
    records = [
        make_company(business_id="3100000-1", name="Alpha Oy"),
        make_company(business_id="3100000-2", name="Beta Oy", registration_date="2022-03-04"),
        make_company(business_id="3100000-3", industry_code=""),
    ]
    source, session, sleep = make_source([records])

    entities = source.fetch(500)

    assert [e.natural_key for e in entities] == ["3100000-1", "3100000-2"]
    assert session.get.call_count == 1
    sleep.assert_not_called()
    beta = entities[1]
    assert beta.display_name == "Beta Oy"
    assert beta.attributes == {
        "name": "Beta Oy",
        "description": "Computer programming",
        "address": "Mannerheimintie10, 00100 Helsinki",
        "registrationDate": "2022-03-04",
        "industryCode": "62010",
        "categoryName": "Industry Code: 62010",
    }


def test_non_object_records_are_fatal():
    source, _, _ = make_source([{"companies": [make_company(), None]}])
    with pytest.raises(SourceError, match="non-object"):
        source.fetch(10)
