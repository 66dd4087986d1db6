"""
Registry and chain-store document scrapers.

These sources publish lists, not coordinates: the health-insurance fund (FZO)
ships a PDF, the Montefarm and BENU chains publish HTML store pages. Each
scraper fetches one document, keeps the text blocks that mention a pharmacy
and returns them as ``RegistryRow`` objects. The row parsers below recover
name, city, address and contacts; the orchestrator geocodes the result.
"""
from __future__ import annotations

import io
import logging
import re
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

import pdfplumber
import requests
from bs4 import BeautifulSoup

from ..config.cities import MUNICIPALITIES
from ..exceptions import ParseFailureError, ProviderError, ProviderUnavailableError
from ..models import ParsedRow, ProviderType, RegistryRow
from ..normalization import clamp, extract_phones, normalize_name
from ..utils.api_usage_tracker import ApiCallTracker
from ..utils.retry import RetryPolicy
from .base import build_session

logger = logging.getLogger(__name__)

CITY_RE = re.compile(r"\b(" + "|".join(re.escape(m) for m in MUNICIPALITIES) + r")\b", re.IGNORECASE)
EMAIL_RE = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)

_QUOTED_NAME_RE = re.compile(r'"([^"]+)"')
_APOTEKA_NAME_RE = re.compile(r"\bApoteka\s+([^,;]+)", re.IGNORECASE)
_STREET_RE = re.compile(
    r"((Ulica|Ul\.|Bulevar|Trg|Put|Maršala|Mojsija|Nika|Vladimira)[^,;]+(?:\b(?:bb|br\.\s*\d+|\d+\w?)\b)?)",
    re.IGNORECASE,
)
_MONTEFARM_RE = re.compile(r"Pharmacy\s+(.+?)\s+([A-ZČĆĐŠŽ][\wšđžćč]+)$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# document -> text
# ---------------------------------------------------------------------------

def pdf_lines(content: bytes) -> List[str]:
    """Return the stripped, non-empty text lines of a PDF document."""
    lines: List[str] = []
    with pdfplumber.open(io.BytesIO(content)) as pdf:
        for page in pdf.pages:
            text = page.extract_text(x_tolerance=3, y_tolerance=3) or ""
            lines.extend(line.strip() for line in text.splitlines() if line.strip())
    return lines


def html_blocks(html: str, selectors: str) -> List[str]:
    """Return the whitespace-collapsed text of every element matching ``selectors``."""
    soup = BeautifulSoup(html, "html.parser")
    blocks = []
    for element in soup.select(selectors):
        text = " ".join(element.get_text(" ").split())
        if text:
            blocks.append(text)
    return blocks


def unique_rows(texts: Sequence[str], pattern: re.Pattern, source_type: ProviderType) -> List[RegistryRow]:
    """Keep texts matching ``pattern``, dropping repeats by normalized text."""
    seen = set()
    rows = []
    for text in texts:
        if not pattern.search(text):
            continue
        key = normalize_name(text)
        if key in seen:
            continue
        seen.add(key)
        rows.append(RegistryRow(raw=text, source_type=source_type))
    return rows


# ---------------------------------------------------------------------------
# Scrapers
# ---------------------------------------------------------------------------

class RegistryScraper(ABC):
    """Fetch one document and turn it into registry rows; never raises."""

    name = "registry"
    source_type = ProviderType.FZO
    url_field = ""
    row_pattern: re.Pattern = re.compile(r"apoteka", re.IGNORECASE)

    def __init__(self, config, session: Optional[requests.Session] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 tracker: Optional[ApiCallTracker] = None):
        self.config = config
        self.session = session or build_session(config.user_agent)
        self.retry_policy = retry_policy or RetryPolicy.from_config(config)
        self.tracker = tracker or ApiCallTracker()

    @property
    def url(self) -> str:
        return getattr(self.config, self.url_field)

    def fetch_rows(self) -> List[RegistryRow]:
        try:
            response = self.retry_policy.call(self._download)
            rows = unique_rows(self.extract_texts(response), self.row_pattern, self.source_type)
        except ProviderError as exc:
            self.tracker.record_failure(self.name, "document")
            logger.warning("%s scrape degraded to empty result: %s", self.name, exc)
            return []
        except Exception as exc:  # pdfplumber/bs4 raise a wide range of parser errors
            self.tracker.record_failure(self.name, "document")
            logger.warning("%s document could not be read: %s", self.name, exc)
            return []
        self.tracker.record_call(self.name, "document", results=len(rows))
        logger.info("%s yielded %d rows", self.name, len(rows))
        return rows

    def _download(self) -> requests.Response:
        try:
            response = self.session.get(self.url, timeout=self.config.fetch_timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ProviderUnavailableError(f"{self.url}: {exc}", provider=self.name) from exc
        return response

    @abstractmethod
    def extract_texts(self, response: requests.Response) -> List[str]:
        """Return the candidate text lines or blocks of the downloaded document."""


class FzoRegistryScraper(RegistryScraper):
    name = "fzo"
    source_type = ProviderType.FZO
    url_field = "fzo_url"
    row_pattern = re.compile(r"(apoteka|апотека|pharmacy)", re.IGNORECASE)

    def extract_texts(self, response: requests.Response) -> List[str]:
        return pdf_lines(response.content)


class MontefarmScraper(RegistryScraper):
    name = "montefarm"
    source_type = ProviderType.MONTEFARM
    url_field = "montefarm_url"
    row_pattern = re.compile(r"Pharmacy|Apoteka", re.IGNORECASE)
    selectors = "li, p, h2, h3, .pharmacy, .elementor-widget-container"

    def extract_texts(self, response: requests.Response) -> List[str]:
        return html_blocks(response.text, self.selectors)


class BenuScraper(RegistryScraper):
    name = "benu"
    source_type = ProviderType.BENU
    url_field = "benu_url"
    row_pattern = re.compile(r"(BENU|Apoteka|Pharmacy)", re.IGNORECASE)
    selectors = "a, li, p, div"

    def extract_texts(self, response: requests.Response) -> List[str]:
        return html_blocks(response.text, self.selectors)


# ---------------------------------------------------------------------------
# Row parsers
# ---------------------------------------------------------------------------

def parse_contacts(raw: str):
    """Return ``(emails, phones)`` found in ``raw``, each de-duplicated in order."""
    emails = list(dict.fromkeys(m.group(0) for m in EMAIL_RE.finditer(raw)))
    return tuple(emails), tuple(extract_phones(raw))


def _city(raw: str) -> Optional[str]:
    match = CITY_RE.search(raw)
    return match.group(1) if match else None


def _require_identity(row: RegistryRow, parsed: ParsedRow) -> ParsedRow:
    if not parsed.name and not parsed.city_name:
        raise ParseFailureError(f"no name or city in {row.source_type.value} row: {row.raw[:60]!r}")
    return parsed


def parse_fzo_row(row: RegistryRow) -> ParsedRow:
    raw = row.raw
    emails, phones = parse_contacts(raw)
    name_match = _QUOTED_NAME_RE.search(raw) or _APOTEKA_NAME_RE.search(raw)
    street = _STREET_RE.search(raw)
    return _require_identity(row, ParsedRow(
        source_type=row.source_type,
        name=clamp(name_match.group(1)) if name_match else None,
        address=clamp(street.group(1)) if street else None,
        city_name=_city(raw),
        emails=emails,
        phones=phones,
    ))


def parse_montefarm_row(row: RegistryRow) -> ParsedRow:
    raw = row.raw
    emails, phones = parse_contacts(raw)
    match = _MONTEFARM_RE.search(raw)
    if match:
        name, city = clamp(match.group(1)), clamp(match.group(2))
    else:
        name, city = None, _city(raw)
    return _require_identity(row, ParsedRow(
        source_type=row.source_type, name=name, city_name=city, emails=emails, phones=phones,
    ))


def parse_benu_row(row: RegistryRow) -> ParsedRow:
    raw = row.raw
    emails, phones = parse_contacts(raw)
    return _require_identity(row, ParsedRow(
        source_type=row.source_type,
        name="BENU Apoteka" if re.search(r"BENU", raw, re.IGNORECASE) else None,
        city_name=_city(raw),
        emails=emails,
        phones=phones,
    ))


ROW_PARSERS: dict = {
    ProviderType.FZO: parse_fzo_row,
    ProviderType.MONTEFARM: parse_montefarm_row,
    ProviderType.BENU: parse_benu_row,
}


def parse_row(row: RegistryRow) -> ParsedRow:
    """Dispatch ``row`` to the parser for its source; raises ParseFailureError."""
    parser: Optional[Callable[[RegistryRow], ParsedRow]] = ROW_PARSERS.get(row.source_type)
    if parser is None:
        raise ParseFailureError(f"no parser for {row.source_type.value} rows")
    return parser(row)
