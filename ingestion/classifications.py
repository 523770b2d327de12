"""
Industry classification lookup.

The table is fetched once per process from the Statistics Finland
classification service and kept on a ``ClassificationCache`` instance that the
registry source receives explicitly.
"""

import logging
from typing import Any, Dict, Optional

import requests

from entities.entity_models import ClassificationEntry

logger = logging.getLogger(__name__)

CLASSIFICATIONS_URL = (
    "https://data.stat.fi/api/classifications/v2/classifications/"
    "toimiala_1_20250101/classificationItems"
)
CLASSIFICATIONS_PARAMS = {"content": "data", "meta": "max", "lang": "fi", "format": "json"}

TARGET_LANGUAGE = "en"
SOURCE_LANGUAGE = "fi"


def parse_classification_item(item: Dict[str, Any]) -> Optional[ClassificationEntry]:
    """
    Turn one raw classification item into a ``ClassificationEntry``.

    The English name wins over the Finnish one; an item with neither gets an empty
    label. Items without a code are ignored.
    """
    code = item.get("code")
    if not code:
        return None

    names = item.get("classificationItemNames")
    if not isinstance(names, list):
        names = []
    by_language = {}
    for name in names:
        if isinstance(name, dict) and name.get("lang") not in by_language:
            by_language[name.get("lang")] = name.get("name") or ""

    label = by_language.get(TARGET_LANGUAGE) or by_language.get(SOURCE_LANGUAGE) or ""
    return ClassificationEntry(
        code=str(code),
        label=label,
        is_source_language=TARGET_LANGUAGE not in by_language,
    )


class ClassificationCache:
    """
    Lazily loaded code -> ``ClassificationEntry`` table.

    A failed load is remembered as an empty table; it is not retried within
    the lifetime of the instance.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        url: str = CLASSIFICATIONS_URL,
        timeout: float = 30,
    ):
        self.session = session or requests.Session()
        self.url = url
        self.timeout = timeout
        self.load_attempted = False
        self._entries: Dict[str, ClassificationEntry] = {}

    def get_classifications(self) -> Dict[str, ClassificationEntry]:
        if self.load_attempted:
            return self._entries
        self.load_attempted = True

        logger.info("Fetching industry classifications from %s", self.url)
        try:
            response = self.session.get(
                self.url,
                params=CLASSIFICATIONS_PARAMS,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Could not load industry classifications: %s", exc)
            return self._entries

        items = data if isinstance(data, list) else [data]
        entries = {}
        for item in items:
            if not isinstance(item, dict):
                continue
            entry = parse_classification_item(item)
            if entry is not None:
                entries[entry.code] = entry
        self._entries = entries
        logger.info("Loaded %d industry classifications", len(entries))
        return self._entries
