"""
Company source backed by the Finnish Trade Register (PRH) open data API.

Pages through the company listing, keeps companies registered from the cutoff
year onwards that carry an industry classification, and normalizes each one
into a ``NormalizedEntity`` whose attributes hold the company details.
"""

import logging
import time
from datetime import date
from typing import Any, Callable, Dict, List, Optional

import requests

from entities.entity_models import NormalizedEntity
from ingestion.classifications import ClassificationCache
from ingestion.errors import SourceError
from ingestion.translation import Translator

logger = logging.getLogger(__name__)

PRH_API_URL = "https://avoindata.prh.fi/opendata-ytj-api/v3/companies"

PAGE_SIZE = 100
MAX_PAGES = 50
PAGE_DELAY = 0.2
MIN_REGISTRATION_YEAR = 2020

# PRH codes
ACTIVE_NAME_TYPE = "1"
ENGLISH = "3"
FINNISH = "1"
VISITING_ADDRESS = 1


# =====================
# Field extraction
# =====================

def extract_business_id(company: Dict[str, Any]) -> str:
    """Business ID from either ``{"businessId": {"value": ...}}`` or a flat string."""
    business_id = company.get("businessId")
    if isinstance(business_id, dict):
        return business_id.get("value") or ""
    return business_id or ""


def extract_registration_date(company: Dict[str, Any]) -> Optional[str]:
    business_id = company.get("businessId")
    if isinstance(business_id, dict) and business_id.get("registrationDate"):
        return business_id["registrationDate"]
    return company.get("registrationDate") or None


def registration_year(company: Dict[str, Any]) -> int:
    """Year of registration, 0 when absent or unparseable."""
    value = extract_registration_date(company)
    if not value:
        return 0
    try:
        return date.fromisoformat(str(value)[:10]).year
    except ValueError:
        return 0


def extract_industry_code(company: Dict[str, Any]) -> str:
    business_line = company.get("mainBusinessLine") or {}
    return business_line.get("type") or ""


def current_name(company: Dict[str, Any]) -> str:
    """
    The active official name (type 1 without an end date), else the first listed name.
    """
    names = company.get("names") or []
    if not names:
        return "Unknown"
    for name in names:
        if name.get("type") == ACTIVE_NAME_TYPE and not name.get("endDate") and name.get("name"):
            return name["name"]
    return names[0].get("name") or "Unknown"


def business_description(company: Dict[str, Any]) -> str:
    business_line = company.get("mainBusinessLine") or {}
    descriptions = business_line.get("descriptions") or []
    if not descriptions:
        return ""
    for description in descriptions:
        if description.get("languageCode") == ENGLISH and description.get("description"):
            return description["description"]
    return descriptions[0].get("description") or ""


def _city(address: Dict[str, Any]) -> str:
    post_offices = address.get("postOffices") or []
    for language in (ENGLISH, FINNISH):
        for office in post_offices:
            if office.get("languageCode") == language and office.get("city"):
                return office["city"]
    if post_offices:
        return post_offices[0].get("city") or ""
    return ""


def compose_address(address: Optional[Dict[str, Any]]) -> str:
    """
    Single-line address such as ``"Mannerheimintie10 B 5, 00100 Helsinki"``.

    Street and building number are written together, as the register stores
    them; entrance and apartment are space separated. Missing parts leave no
    stray spaces or commas behind.
    """
    if not address:
        return ""
    street_part = "".join([
        address.get("street") or "",
        str(address.get("buildingNumber") or ""),
        f" {address['entrance']}" if address.get("entrance") else "",
        f" {address['apartmentNumber']}" if address.get("apartmentNumber") else "",
    ]).strip()
    locality = " ".join(part for part in (address.get("postCode") or "", _city(address)) if part)
    return ", ".join(part for part in (street_part, locality) if part)


def visiting_address(company: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    addresses = company.get("addresses") or []
    for address in addresses:
        if address.get("type") == VISITING_ADDRESS:
            return address
    return addresses[0] if addresses else None


# =====================
# Source
# =====================

class RegistrySource:
    """
    Fetches and normalizes recently registered companies.

    Args:
        classifications: Shared classification lookup for industry labels.
        translator: Translates Finnish industry labels.
        session: HTTP session for the listing API.
        sleep: Called with the politeness delay between page requests.
    """

    def __init__(
        self,
        classifications: ClassificationCache,
        translator: Translator,
        session: Optional[requests.Session] = None,
        url: str = PRH_API_URL,
        page_size: int = PAGE_SIZE,
        max_pages: int = MAX_PAGES,
        page_delay: float = PAGE_DELAY,
        min_registration_year: int = MIN_REGISTRATION_YEAR,
        timeout: float = 60,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.classifications = classifications
        self.translator = translator
        self.session = session or requests.Session()
        self.url = url
        self.page_size = page_size
        self.max_pages = max_pages
        self.page_delay = page_delay
        self.min_registration_year = min_registration_year
        self.timeout = timeout
        self.sleep = sleep

    def matches(self, company: Dict[str, Any]) -> bool:
        """Registered in or after the cutoff year, with an industry code and a business ID."""
        return (
            registration_year(company) >= self.min_registration_year
            and bool(extract_industry_code(company))
            and bool(extract_business_id(company))
        )

    def fetch_page(self, page: int) -> List[Dict[str, Any]]:
        try:
            response = self.session.get(
                self.url,
                params={
                    "page": page,
                    "registrationDateStart": f"{self.min_registration_year}-01-01",
                },
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise SourceError(f"Company listing request for page {page} failed: {exc}") from exc

        records = None
        if isinstance(data, list):
            records = data
        elif isinstance(data, dict):
            for key in ("companies", "results"):
                if key in data:
                    records = data[key] or []
                    break
        if not isinstance(records, list):
            raise SourceError(f"Unexpected company listing payload on page {page}")
        if not all(isinstance(record, dict) for record in records):
            raise SourceError(f"Company listing page {page} contains non-object records")
        return records

    def fetch_raw(self, target_count: int) -> List[Dict[str, Any]]:
        """
        Collect matching raw records until the target is reached, the listing runs
        out, or the page ceiling is hit.
        """
        collected: List[Dict[str, Any]] = []
        page = 1
        while len(collected) < target_count:
            logger.info("Fetching company page %d", page)
            records = self.fetch_page(page)
            if not records:
                logger.info("No more results on page %d", page)
                break

            matching = [record for record in records if self.matches(record)]
            logger.info(
                "Page %d: %d companies, %d registered >= %d with industry code",
                page, len(records), len(matching), self.min_registration_year,
            )
            collected.extend(matching)

            if len(collected) >= target_count:
                logger.info("Reached target of %d companies", target_count)
                break
            if len(records) < self.page_size:
                logger.info("Reached last page (%d < %d)", len(records), self.page_size)
                break
            if page >= self.max_pages:
                logger.warning("Reached page limit (%d pages)", self.max_pages)
                break
            page += 1
            self.sleep(self.page_delay)

        return collected[:target_count]

    def industry_label(self, code: str) -> str:
        if not code:
            return ""
        entry = self.classifications.get_classifications().get(code)
        if entry is None:
            return f"Industry Code: {code}"
        if entry.label and entry.is_source_language:
            return self.translator.translate(entry.label)
        return entry.label

    def normalize(self, company: Dict[str, Any]) -> NormalizedEntity:
        name = current_name(company)
        industry_code = extract_industry_code(company)
        return NormalizedEntity(
            natural_key=extract_business_id(company),
            display_name=name,
            attributes={
                "name": name,
                "description": business_description(company),
                "address": compose_address(visiting_address(company)),
                "registrationDate": extract_registration_date(company),
                "industryCode": industry_code,
                "categoryName": self.industry_label(industry_code),
            },
        )

    def fetch(self, target_count: int) -> List[NormalizedEntity]:
        """
        Fetch up to ``target_count`` normalized companies.

        Raises:
            SourceError: If any listing request fails or returns an unexpected payload.
        """
        logger.info("Fetching companies from %s", self.url)
        raw = self.fetch_raw(target_count)
        if not raw:
            logger.warning("No companies found matching criteria")
            return []
        logger.info("Processing %d companies", len(raw))
        entities = [self.normalize(company) for company in raw]
        logger.info("Processed %d companies", len(entities))
        return entities
