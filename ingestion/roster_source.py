"""
Investor source backed by a local JSON roster.
"""

import json
import logging
import os
from typing import Any, Dict, List

from pydantic import ValidationError

from entities.entity_models import NormalizedEntity
from ingestion.errors import SourceError

logger = logging.getLogger(__name__)


def investor_to_entity(investor: Dict[str, Any], position: int) -> NormalizedEntity:
    """
    Map one roster object to an entity, keeping the whole object as attributes.

    Raises:
        SourceError: If the investor has no ``id`` or cannot be mapped.
    """
    investor_id = investor.get("id")
    if investor_id is None or str(investor_id).strip() == "":
        raise SourceError(f"Investor at position {position} has no 'id'")
    try:
        return NormalizedEntity(
            natural_key=str(investor_id),
            display_name=investor.get("name") or "",
            attributes=investor,
        )
    except ValidationError as exc:
        raise SourceError(f"Investor at position {position} is malformed: {exc}") from exc


class RosterSource:
    """
    Loads investors from a JSON document holding a list of investor objects.
    """

    def __init__(self, path: str = "investors.json"):
        self.path = path

    def load_raw(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            raise SourceError(f"Investor file {self.path} not found")
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                investors = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise SourceError(f"Could not read {self.path}: {exc}") from exc

        if not isinstance(investors, list) or not all(isinstance(i, dict) for i in investors):
            raise SourceError(f"{self.path} must contain a JSON list of investor objects")
        return investors

    def fetch(self) -> List[NormalizedEntity]:
        logger.info("Loading investors from %s", self.path)
        investors = self.load_raw()
        entities = [investor_to_entity(investor, i) for i, investor in enumerate(investors)]
        logger.info("Loaded %d investors", len(entities))
        return entities
