"""Rule-based field extraction from recognized document text.

Turns free-form OCR text into typed fields (document number, dates, names,
nationality) with a confidence per field, using regex patterns and
language-specific label keywords. Fields that are not found are absent from
the result rather than present with a placeholder value.
"""

import re
from dataclasses import dataclass

from doctrack_ocr.utils.logger import get_logger

from .keywords import (
    BIRTH_KEYWORDS,
    EXPIRY_KEYWORDS,
    ISSUE_KEYWORDS,
    NAME_KEYWORDS,
    keyword_pattern,
    keywords_for,
)

logger = get_logger(__name__)

LABELLED_CONFIDENCE = 85
POSITIONAL_CONFIDENCE = 75
DOCUMENT_NUMBER_CONFIDENCE = 85
FULL_NAME_CONFIDENCE = 85
NAME_PART_CONFIDENCE = 80
NATIONALITY_CONFIDENCE = 90


@dataclass
class FieldValue:
    """An extracted field value with a 0-100 confidence."""

    value: str
    confidence: int

    def to_dict(self) -> dict[str, object]:
        return {"value": self.value, "confidence": self.confidence}


FieldMap = dict[str, FieldValue]


@dataclass
class DateMatch:
    """A date-like substring found in text."""

    raw: str
    normalized: str
    start: int

    @property
    def is_normalized(self) -> bool:
        return self.normalized != self.raw


# Ordered: passport, driver licence, SSN, generic alphanumeric (with a digit).
_DOCUMENT_NUMBER_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\b[A-Z]{1,2}\d{6,12}\b"),
    re.compile(r"\b[A-Z]\d{7,8}\b"),
    re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    re.compile(r"\b(?=[A-Z0-9]*\d)[A-Z0-9]{8,15}\b"),
]

_MONTHS = "Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec"
_MONTH_NUMBERS = {name.lower(): i for i, name in enumerate(_MONTHS.split("|"), 1)}

_DATE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\b\d{1,2}[/\-]\d{1,2}[/\-](?:\d{4}|\d{2})\b"),
    re.compile(r"\b\d{4}[/\-]\d{1,2}[/\-]\d{1,2}\b"),
    re.compile(rf"\b\d{{1,2}}\s+(?:{_MONTHS})[a-z]*\.?\s+\d{{4}}\b", re.IGNORECASE),
]

_MONTH_NAME_DATE = re.compile(r"^(\d{1,2})\s+([A-Za-z]{3})[A-Za-z]*\.?\s+(\d{4})$")

_NAME_TOKEN = r"[A-Z][A-Za-z'\-]+"

_COUNTRY_NAMES = [
    "United States",
    "United Kingdom",
    "Canada",
    "Mexico",
    "France",
    "Germany",
    "Spain",
    "Italy",
    "Japan",
    "China",
    "Australia",
    "Brazil",
    "India",
]
_COUNTRY_CODES = [
    "USA",
    "CAN",
    "MEX",
    "GBR",
    "FRA",
    "DEU",
    "ESP",
    "ITA",
    "JPN",
    "CHN",
    "AUS",
    "BRA",
    "IND",
    "US",
    "CA",
    "MX",
    "UK",
    "GB",
    "FR",
    "DE",
    "ES",
    "IT",
    "JP",
    "CN",
    "AU",
    "BR",
    "IN",
]


def normalize_whitespace(text: str) -> str:
    """Collapse runs of spaces and tabs, keeping line structure.

    Args:
        text: Raw recognized text.

    Returns:
        Text with single-spaced, stripped, non-empty lines.
    """
    lines = (re.sub(r"[^\S\n]+", " ", line).strip() for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def normalize_date(raw: str) -> str:
    """Normalize a date string to ``YYYY-MM-DD``.

    A leading 4-digit group means ISO order. Otherwise a first component
    greater than 12 means day-first, and anything else is read month-first
    (US order). Two-digit years are placed in the 2000s.

    Args:
        raw: Date substring as found in the text.

    Returns:
        Canonical date, or ``raw`` unchanged if it cannot be parsed into
        year 1900-2100, month 1-12, day 1-31.
    """
    stripped = raw.strip()
    named = _MONTH_NAME_DATE.match(stripped)

    if named:
        day = int(named.group(1))
        month = _MONTH_NUMBERS.get(named.group(2).lower(), 0)
        year = int(named.group(3))
    else:
        parts = re.split(r"[/\-]", re.sub(r"[^\d/\-]", "", stripped))
        if len(parts) != 3 or not all(p.isdigit() for p in parts):
            return raw

        first, second, third = parts
        if len(first) == 4:
            year, month, day = int(first), int(second), int(third)
        else:
            if int(first) > 12:
                day, month = int(first), int(second)
            else:
                month, day = int(first), int(second)
            year = int(third)
            if year < 100:
                year += 2000

    if 1900 <= year <= 2100 and 1 <= month <= 12 and 1 <= day <= 31:
        return f"{year:04d}-{month:02d}-{day:02d}"
    return raw


def extract_dates(text: str) -> list[DateMatch]:
    """Find every date-like substring in text, in reading order.

    Args:
        text: Text to search.

    Returns:
        Date matches sorted by position.
    """
    found: dict[int, DateMatch] = {}
    for pattern in _DATE_PATTERNS:
        for match in pattern.finditer(text):
            if match.start() not in found:
                raw = match.group(0)
                found[match.start()] = DateMatch(
                    raw=raw, normalized=normalize_date(raw), start=match.start()
                )
    return [found[start] for start in sorted(found)]


def _chronological_key(date: DateMatch) -> tuple[int, str, int]:
    # Unparseable dates sort by position only, after every parsed date.
    if date.is_normalized:
        return (0, date.normalized, date.start)
    return (1, "", date.start)


@dataclass
class _Line:
    text: str
    offset: int
    dates: list[DateMatch]


class FieldExtractor:
    """Language-aware extractor for identity and expiry document fields."""

    def extract(self, text: str, language: str = "en") -> FieldMap:
        """Extract fields from recognized text.

        Never raises: an internal failure is logged and yields an empty map.

        Args:
            text: Recognized document text.
            language: Language code selecting the label keyword set.

        Returns:
            Mapping of field name to value and confidence.
        """
        try:
            return self._extract(text or "", language)
        except Exception as exc:
            logger.warning("Field extraction failed: %s", exc)
            return {}

    def _extract(self, text: str, language: str) -> FieldMap:
        fields: FieldMap = {}
        clean = normalize_whitespace(text)

        document_number = self._extract_document_number(clean)
        if document_number:
            fields["documentNumber"] = FieldValue(
                document_number, DOCUMENT_NUMBER_CONFIDENCE
            )

        fields.update(self._extract_date_fields(clean, language))
        fields.update(self._extract_names(clean, language))

        country = self._extract_country(clean)
        if country:
            fields["nationality"] = FieldValue(country, NATIONALITY_CONFIDENCE)

        logger.info("Field extraction found %d fields", len(fields))
        return fields

    def _extract_document_number(self, text: str) -> str | None:
        for pattern in _DOCUMENT_NUMBER_PATTERNS:
            match = pattern.search(text)
            if match:
                return match.group(0)
        return None

    def _extract_date_fields(self, text: str, language: str) -> FieldMap:
        fields: FieldMap = {}
        claimed: set[int] = set()
        lines: list[_Line] = []
        offset = 0

        for line in text.split("\n"):
            dates = [
                DateMatch(d.raw, d.normalized, d.start + offset)
                for d in extract_dates(line)
            ]
            lines.append(_Line(line, offset, dates))
            offset += len(line) + 1

        total_dates = sum(len(line.dates) for line in lines)
        if total_dates == 0:
            return fields

        labelled = (
            ("dateOfBirth", BIRTH_KEYWORDS),
            ("issueDate", ISSUE_KEYWORDS),
            ("expirationDate", EXPIRY_KEYWORDS),
        )
        for name, table in labelled:
            date = self._find_labelled_date(
                lines, keyword_pattern(table, language), claimed
            )
            if date is not None:
                fields[name] = FieldValue(date.normalized, LABELLED_CONFIDENCE)
                claimed.add(date.start)

        # Positional fallback only considers dates no label has claimed.
        candidates = sorted(
            (d for line in lines for d in line.dates if d.start not in claimed),
            key=_chronological_key,
        )
        if "expirationDate" not in fields and candidates:
            latest = candidates.pop()
            fields["expirationDate"] = FieldValue(
                latest.normalized, POSITIONAL_CONFIDENCE
            )
        if "issueDate" not in fields and total_dates > 1 and candidates:
            earliest = candidates[0]
            fields["issueDate"] = FieldValue(earliest.normalized, POSITIONAL_CONFIDENCE)

        return fields

    def _find_labelled_date(
        self,
        lines: list[_Line],
        keywords: re.Pattern[str],
        claimed: set[int],
    ) -> DateMatch | None:
        """Date that follows a label keyword on the first labelled line."""
        for line in lines:
            label = keywords.search(line.text)
            available = [d for d in line.dates if d.start not in claimed]
            if label is None or not available:
                continue
            label_start = line.offset + label.start()
            after_label = [d for d in available if d.start >= label_start]
            return (after_label or available)[0]
        return None

    def _extract_names(self, text: str, language: str) -> FieldMap:
        fields: FieldMap = {}
        label_alternation = "|".join(keywords_for(NAME_KEYWORDS, language))
        label = keyword_pattern(NAME_KEYWORDS, language)
        tokens = rf"{_NAME_TOKEN}(?:[ \t]+{_NAME_TOKEN}){{1,3}}"
        name_pattern = re.compile(rf"(?i:{label_alternation})[:\s]+({tokens})")

        for line in text.split("\n"):
            if not label.search(line):
                continue
            match = name_pattern.search(line)
            if not match:
                continue

            full_name = match.group(1).strip()
            parts = full_name.split()
            if len(parts) >= 2:
                fields["firstName"] = FieldValue(parts[0], NAME_PART_CONFIDENCE)
                fields["lastName"] = FieldValue(
                    " ".join(parts[1:]), NAME_PART_CONFIDENCE
                )
            fields["fullName"] = FieldValue(full_name, FULL_NAME_CONFIDENCE)
            break

        return fields

    def _extract_country(self, text: str) -> str | None:
        for name in _COUNTRY_NAMES:
            if name in text:
                return name
        for code in _COUNTRY_CODES:
            if re.search(rf"\b{code}\b", text):
                return code
        return None


_default_extractor = FieldExtractor()


def extract_fields(text: str, language: str = "en") -> FieldMap:
    """Extract fields with the shared :class:`FieldExtractor`."""
    return _default_extractor.extract(text, language)
