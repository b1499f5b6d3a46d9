"""Language-specific label keywords for locating fields in recognized text.

Entries are regex fragments matched case-insensitively. Unknown languages
fall back to English.
"""

import re
from functools import lru_cache

DEFAULT_LANGUAGE = "en"

EXPIRY_KEYWORDS: dict[str, list[str]] = {
    "en": [r"exp\b", r"expir", r"valid until", r"valid thru", r"valid to"],
    "es": [r"caduca", r"caducidad", r"válido hasta", r"vence", r"vencimiento"],
    "fr": [r"expire", r"expiration", r"valable jusqu", r"validité"],
    "de": [r"gültig bis", r"ablauf", r"verfällt", r"gültigkeit"],
    "pt": [r"exp\b", r"validade", r"expira", r"válido até"],
    "it": [r"scad", r"scadenza", r"valido fino"],
    "ru": [r"срок действия", r"действителен до"],
    "ar": [r"انتهاء", r"صلاحية", r"تاريخ الانتهاء"],
    "zh": [r"有效期", r"到期", r"失效"],
}

ISSUE_KEYWORDS: dict[str, list[str]] = {
    "en": [r"issue", r"date of issue", r"issued on"],
    "es": [r"emisión", r"fecha de emisión", r"expedición"],
    "fr": [r"émission", r"date d'émission", r"délivré"],
    "de": [r"ausgestellt", r"ausgabe", r"ausstellungsdatum"],
    "pt": [r"emissão", r"data de emissão", r"emitido"],
    "it": [r"emissione", r"data di emissione", r"rilascio"],
    "ru": [r"выдан", r"дата выдачи"],
    "ar": [r"إصدار", r"تاريخ الإصدار"],
    "zh": [r"签发", r"颁发日期"],
}

BIRTH_KEYWORDS: dict[str, list[str]] = {
    "en": [r"date of birth", r"\bdob\b", r"birth date", r"born"],
    "es": [r"fecha de nacimiento", r"nacimiento"],
    "fr": [r"date de naissance", r"né le", r"née le"],
    "de": [r"geburtsdatum", r"geboren"],
    "pt": [r"data de nascimento", r"nascimento"],
    "it": [r"data di nascita", r"nato il", r"nata il"],
    "ru": [r"дата рождения"],
    "ar": [r"تاريخ الميلاد"],
    "zh": [r"出生日期", r"出生"],
}

NAME_KEYWORDS: dict[str, list[str]] = {
    "en": [r"full name", r"given names?", r"surname", r"name", r"holder", r"bearer"],
    "es": [r"nombre", r"apellidos", r"titular", r"portador"],
    "fr": [r"prénom", r"nom", r"titulaire", r"porteur"],
    "de": [r"nachname", r"vorname", r"name", r"inhaber"],
    "pt": [r"sobrenome", r"nome", r"titular", r"portador"],
    "it": [r"cognome", r"nome", r"titolare", r"portatore"],
    "ru": [r"фамилия", r"имя", r"владелец"],
    "ar": [r"الاسم", r"اسم", r"حامل"],
    "zh": [r"姓名", r"持有人", r"名"],
}


def _base_language(language: str) -> str:
    return (language or DEFAULT_LANGUAGE).lower().replace("_", "-").split("-")[0]


def keywords_for(table: dict[str, list[str]], language: str) -> list[str]:
    """Keyword fragments for a language, falling back to English."""
    return table.get(_base_language(language), table[DEFAULT_LANGUAGE])


@lru_cache(maxsize=128)
def _compile(fragments: tuple[str, ...]) -> re.Pattern[str]:
    return re.compile("(?:" + "|".join(fragments) + ")", re.IGNORECASE)


def keyword_pattern(table: dict[str, list[str]], language: str) -> re.Pattern[str]:
    """Compiled case-insensitive alternation of a language's keywords."""
    return _compile(tuple(keywords_for(table, language)))
