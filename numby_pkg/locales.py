"""Locale catalog and the process-wide active locale."""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from typing import Mapping

from .config import DEFAULT_LOCALE
from .logging_config import get_logger
from .types import LocaleNotFoundError

logger = get_logger("locales")


@dataclass(frozen=True)
class LocaleSetting:
    """Display and input conventions of one locale."""

    code: str
    display_name: str
    decimal_separator: str = "."
    group_separator: str = ","
    currency_prefix: bool = True
    conversion_keywords: tuple[str, ...] = ()
    percent_of_keywords: tuple[str, ...] = ()
    unit_aliases: Mapping[str, str] = field(default_factory=dict, compare=False)

    @property
    def language(self) -> str:
        return self.code.split("-")[0].lower()


LOCALES: tuple[LocaleSetting, ...] = (
    LocaleSetting("en-US", "English"),
    LocaleSetting(
        "es",
        "Español",
        decimal_separator=",",
        group_separator=".",
        currency_prefix=False,
        conversion_keywords=("a", "en"),
        percent_of_keywords=("de",),
        unit_aliases={
            "metros": "m",
            "metro": "m",
            "kilómetros": "km",
            "kilometros": "km",
            "millas": "mi",
            "milla": "mi",
            "pies": "ft",
            "gramos": "g",
            "kilos": "kg",
            "libras": "lb",
            "litros": "l",
            "horas": "h",
            "minutos": "min",
            "segundos": "s",
            "días": "day",
            "grados": "deg",
        },
    ),
    LocaleSetting(
        "zh-CN",
        "简体中文",
        conversion_keywords=("转换为", "换成"),
        percent_of_keywords=("的",),
        unit_aliases={
            "米": "m",
            "公里": "km",
            "千米": "km",
            "厘米": "cm",
            "英里": "mi",
            "克": "g",
            "千克": "kg",
            "公斤": "kg",
            "升": "l",
            "小时": "h",
            "分钟": "min",
            "秒": "s",
            "天": "day",
        },
    ),
    LocaleSetting(
        "zh-TW",
        "繁體中文",
        conversion_keywords=("轉換為", "換成"),
        percent_of_keywords=("的",),
        unit_aliases={
            "米": "m",
            "公尺": "m",
            "公里": "km",
            "公分": "cm",
            "英里": "mi",
            "克": "g",
            "公斤": "kg",
            "公升": "l",
            "小時": "h",
            "分鐘": "min",
            "秒": "s",
            "天": "day",
        },
    ),
    LocaleSetting(
        "fr",
        "Français",
        decimal_separator=",",
        group_separator=" ",
        currency_prefix=False,
        conversion_keywords=("en",),
        percent_of_keywords=("de",),
        unit_aliases={
            "mètres": "m",
            "mètre": "m",
            "kilomètres": "km",
            "kilomètre": "km",
            "milles": "mi",
            "grammes": "g",
            "litres": "l",
            "heures": "h",
            "jours": "day",
            "degrés": "deg",
        },
    ),
    LocaleSetting(
        "de",
        "Deutsch",
        decimal_separator=",",
        group_separator=".",
        currency_prefix=False,
        conversion_keywords=("nach",),
        percent_of_keywords=("von",),
        unit_aliases={
            "Meter": "m",
            "Kilometer": "km",
            "Meilen": "mi",
            "Meile": "mi",
            "Fuß": "ft",
            "Gramm": "g",
            "Kilogramm": "kg",
            "Pfund": "lb",
            "Liter": "l",
            "Stunden": "h",
            "Stunde": "h",
            "Minuten": "min",
            "Sekunden": "s",
            "Tage": "day",
            "Grad": "deg",
        },
    ),
    LocaleSetting(
        "ja",
        "日本語",
        conversion_keywords=("に",),
        percent_of_keywords=("の",),
        unit_aliases={
            "メートル": "m",
            "キロメートル": "km",
            "センチメートル": "cm",
            "マイル": "mi",
            "グラム": "g",
            "キログラム": "kg",
            "リットル": "l",
            "時間": "h",
            "分": "min",
            "秒": "s",
        },
    ),
    LocaleSetting(
        "ru",
        "Русский",
        decimal_separator=",",
        group_separator=" ",
        currency_prefix=False,
        conversion_keywords=("в",),
        percent_of_keywords=("от",),
        unit_aliases={
            "метр": "m",
            "метров": "m",
            "км": "km",
            "километров": "km",
            "миль": "mi",
            "грамм": "g",
            "кг": "kg",
            "литров": "l",
            "час": "h",
            "часов": "h",
            "минут": "min",
            "секунд": "s",
        },
    ),
    LocaleSetting(
        "be",
        "Беларуская",
        decimal_separator=",",
        group_separator=" ",
        currency_prefix=False,
        conversion_keywords=("у", "ў"),
        percent_of_keywords=("ад",),
        unit_aliases={
            "метр": "m",
            "метраў": "m",
            "км": "km",
            "кіламетраў": "km",
            "міль": "mi",
            "грам": "g",
            "кг": "kg",
            "літраў": "l",
            "гадзін": "h",
            "хвілін": "min",
            "секунд": "s",
        },
    ),
)

FALLBACK_LOCALE = LOCALES[0]


def resolve_locale(code: str) -> LocaleSetting:
    """Find a catalog locale by code.

    Accepts exact codes, any letter case, ``_`` in place of ``-`` and a bare
    language prefix ("en" matches "en-US", "zh" the first Chinese entry).

    Raises:
        LocaleNotFoundError: If nothing in the catalog matches
    """
    if not isinstance(code, str) or not code.strip():
        raise LocaleNotFoundError(f"Unknown locale: {code!r}")
    wanted = code.strip().replace("_", "-")
    for setting in LOCALES:
        if setting.code == wanted:
            return setting
    folded = wanted.casefold()
    for setting in LOCALES:
        if setting.code.casefold() == folded:
            return setting
    language = folded.split("-")[0]
    for setting in LOCALES:
        if setting.language == language:
            return setting
    raise LocaleNotFoundError(f"Unknown locale: {code}")


def detect_default_locale() -> LocaleSetting:
    """Pick the startup locale from NUMBY_LOCALE, then LANG, then en-US."""
    for candidate in (DEFAULT_LOCALE, os.getenv("LANG", "")):
        # LANG looks like "de_DE.UTF-8"
        candidate = candidate.split(".")[0].split("@")[0]
        if not candidate or candidate in ("C", "POSIX"):
            continue
        try:
            return resolve_locale(candidate)
        except LocaleNotFoundError:
            logger.debug(f"Ignoring unsupported locale {candidate!r}")
    return FALLBACK_LOCALE


_locale_lock = threading.Lock()
_active: list[LocaleSetting | None] = [None]


def current_locale() -> LocaleSetting:
    """Return the process-wide active locale."""
    with _locale_lock:
        if _active[0] is None:
            _active[0] = detect_default_locale()
        return _active[0]


def set_locale(code: str) -> LocaleSetting:
    """Switch the process-wide locale.

    Raises:
        LocaleNotFoundError: If ``code`` matches no catalog entry
    """
    setting = resolve_locale(code)
    with _locale_lock:
        _active[0] = setting
    logger.info(f"Locale set to {setting.code}")
    return setting


def reset_locale() -> None:
    """Forget the active locale; the next read detects it again."""
    with _locale_lock:
        _active[0] = None


def list_locales() -> list[tuple[str, str]]:
    return [(setting.code, setting.display_name) for setting in LOCALES]


def get_locales_count() -> int:
    return len(LOCALES)


def locale_at(index: int) -> LocaleSetting:
    """Return the catalog entry at ``index``.

    Raises:
        LocaleNotFoundError: If the index is out of range
    """
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(LOCALES):
        raise LocaleNotFoundError(f"No locale at index {index!r}")
    return LOCALES[index]
