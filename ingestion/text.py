"""
Text representations of entities used as embedding input.
"""
from typing import Any, Dict

from entities.entity_models import NormalizedEntity


def _text(details: Dict[str, Any], key: str) -> str:
    value = details.get(key)
    return "" if value is None else str(value)


def _joined(details: Dict[str, Any], key: str) -> str:
    value = details.get(key)
    if not value:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value)
    return str(value)


def company_text(entity: NormalizedEntity) -> str:
    details = entity.attributes
    name = _text(details, "name") or entity.display_name
    registration_date = _text(details, "registrationDate") or "N/A"
    return (
        f"Company: {name}. "
        f"Business ID: {entity.natural_key}. "
        f"Industry: {_text(details, 'categoryName')}. "
        f"Description: {_text(details, 'description')}. "
        f"Address: {_text(details, 'address')}. "
        f"Registration Date: {registration_date}."
    )


def investor_text(entity: NormalizedEntity) -> str:
    """
    Only the profile fields relevant for matching go into the text; the full
    roster object is still stored with the entity.
    """
    details = entity.attributes
    firm = _text(details, "firm")
    role = _text(details, "role") + (f" at {firm}" if firm else "")
    return (
        f"Investor: {_text(details, 'name')}. "
        f"Role: {role}. "
        f"Location: {_text(details, 'location')}. "
        f"Investment Thesis: {_text(details, 'investment_thesis')}. "
        f"Preferred Industries: {_joined(details, 'preferred_industries')}. "
        f"Business Models: {_joined(details, 'business_models')}. "
        f"Preferred Rounds: {_joined(details, 'preferred_rounds')}. "
        f"Geographic Focus: {_joined(details, 'geo_focus')}. "
        f"Check Size: {_text(details, 'check_size_range')}. "
        f"Avoid Industries: {_joined(details, 'avoid_industries')}."
    )
