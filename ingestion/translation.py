"""
Finnish -> English translation of industry labels.

Labels go through the DeepL API when a key is configured. Whatever goes wrong
with that call, the label falls back to an exact-match dictionary and finally
to the untranslated text, so translation never stops an ingestion run.
"""

import logging
import re
from typing import Dict, Optional

import requests

logger = logging.getLogger(__name__)

DEEPL_URL = "https://api-free.deepl.com/v2/translate"

FINNISH_CHARS = re.compile(r"[äöåÄÖÅ]")
PLAIN_ENGLISH = re.compile(r"^[a-zA-Z\s,.-]+$")

FALLBACK_TRANSLATIONS: Dict[str, str] = {
    # Sections
    "Maatalous, metsätalous ja kalatalous": "Agriculture, forestry and fishing",
    "Kaivostoiminta ja louhinta": "Mining and quarrying",
    "Teollisuus": "Manufacturing",
    "Sähkö-, kaasu- ja lämpöhuolto, jäähdytysliiketoiminta":
        "Electricity, gas, steam and air conditioning supply",
    "Vesihuolto, viemäri- ja jätevesihuolto, jätehuolto ja muu ympäristön puhtaanapito":
        "Water supply; sewerage, waste management",
    "Rakentaminen": "Construction",
    "Tukku- ja vähittäiskauppa": "Wholesale and retail trade",
    "Kuljetus ja varastointi": "Transportation and storage",
    "Majoitus- ja ravitsemustoiminta": "Accommodation and food service activities",
    "Informaatio ja viestintä": "Information and communication",
    "Rahoitus- ja vakuutustoiminta": "Financial and insurance activities",
    "Kiinteistöalan toiminta": "Real estate activities",
    "Ammatillinen, tieteellinen ja tekninen toiminta":
        "Professional, scientific and technical activities",
    "Hallinto- ja tukipalvelutoiminta": "Administrative and support service activities",
    "Julkinen hallinto ja maanpuolustus": "Public administration and defence",
    "Koulutus": "Education",
    "Terveys- ja sosiaalipalvelut": "Human health and social work activities",
    "Taiteet, viihde ja virkistys": "Arts, entertainment and recreation",
    "Muu palvelutoiminta": "Other service activities",
    "Palo- ja pelastustoimi": "Fire and rescue services",

    # Frequent classes
    "Asuntojen ja asuinkiinteistöjen hallinta": "Residential property management",
    "Muualla luokittelematon muu liike-elämän tukipalvelutoiminta":
        "Other business support services not elsewhere classified",
    "Hevosten ja muiden hevoseläinten kasvatus": "Raising of horses and other equines",
    "Sähköasennus": "Electrical installation",
    "Muuraustyöt": "Masonry work",
    "Hammaslääkäripalvelut": "Dental practice activities",
    "Muu lääkintä- ja hammaslääkintäinstrumenttien ja -tarvikkeiden valmistus":
        "Other manufacture of medical and dental instruments and supplies",
    "Tieliikenteen muu kuin säännöllinen henkilökuljetus": "Other passenger land transport",
    "Rakennuspaikan valmistelutyöt": "Site preparation",
    "Muu kiinteistöalan toiminta palkkio- tai sopimusperhsteella":
        "Other real estate activities on a fee or contract basis",
    "Muualla luokittelematon muu rahoituspalvelutoiminta":
        "Other financial service activities not elsewhere classified",
    "Kiinteistöjä koskevat välityspalvelut": "Real estate agency services",
    "Marjojen, pähkinöiden ja muiden puissa ja pensaissa kasvavien hedelmien viljely":
        "Growing of berries, nuts and other tree and bush fruits",
    "Sähkönjakelu- ja valvontalaitteiden valmistus":
        "Manufacture of electricity distribution and control apparatus",
    "Muu rahoitusta palveleva toiminta pois lukien vakuutus- ja eläkevakuutustoiminta":
        "Other activities auxiliary to financial services, excluding insurance and pension funding",

    # Labels truncated at 50 characters by some upstream exports
    "Muualla luokittelematon muu liike-elämän tukipalve": "Other business support services",
    "Tieliikenteen muu kuin säännöllinen henkilökuljetu": "Other passenger land transport",
    "Muu kiinteistöalan toiminta palkkio- tai sopimuspe":
        "Other real estate activities on fee or contract basis",
    "Muualla luokittelematon muu rahoituspalvelutoimint": "Other financial service activities",
    "Marjojen, pähkinöiden ja muiden puissa ja pensaiss": "Growing of berries, nuts and tree fruits",
    "Muu lääkintä- ja hammaslääkintäinstrumenttien ja -":
        "Other manufacture of medical and dental instruments",
    "Muu rahoitusta palveleva toiminta pois lukien vaku":
        "Other activities auxiliary to financial services",
}


def looks_english(text: str) -> bool:
    """
    Cheap check: no Finnish letters and only ASCII letters, spaces and punctuation.

    Known Finnish terms such as "Teollisuus" pass the character test, so
    dictionary keys never count as English.
    """
    if text in FALLBACK_TRANSLATIONS:
        return False
    return not FINNISH_CHARS.search(text) and bool(PLAIN_ENGLISH.match(text))


def fallback_translation(text: str) -> str:
    """Exact-match dictionary lookup, returning the input when there is no entry."""
    return FALLBACK_TRANSLATIONS.get(text, text)


def _preview(text: str, limit: int = 50) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class Translator:
    """
    Best-effort translator for classification labels.

    Results are memoized per instance, since many companies share a label.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        url: str = DEEPL_URL,
        timeout: float = 10,
        source_lang: str = "FI",
        target_lang: str = "EN",
    ):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.url = url
        self.timeout = timeout
        self.source_lang = source_lang
        self.target_lang = target_lang
        self._memo: Dict[str, str] = {}
        if not api_key:
            logger.warning("DEEPL_API_KEY is not set; using fallback translations only")

    def translate(self, text: str) -> str:
        if not text:
            return text
        if looks_english(text):
            return text
        if text in self._memo:
            return self._memo[text]

        translated = self._translate_remote(text)
        if translated is None:
            translated = fallback_translation(text)
            logger.info("Using fallback translation: %r -> %r", _preview(text), _preview(translated))
        self._memo[text] = translated
        return translated

    def _translate_remote(self, text: str) -> Optional[str]:
        if not self.api_key:
            return None
        logger.info("Translating %r", _preview(text))
        try:
            response = self.session.post(
                self.url,
                data={
                    "text": text,
                    "source_lang": self.source_lang,
                    "target_lang": self.target_lang,
                },
                headers={"Authorization": f"DeepL-Auth-Key {self.api_key}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            translated = response.json()["translations"][0]["text"]
        except (requests.RequestException, ValueError, KeyError, IndexError, TypeError) as exc:
            logger.warning("Translation API failed: %s", exc)
            return None
        return translated or text
