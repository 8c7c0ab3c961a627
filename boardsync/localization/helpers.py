"""Localization helper functions."""
from __future__ import annotations

import logging
from typing import Dict, Optional
from fastapi import Request

from boardsync.config import settings
from boardsync.localization.translations import TRANSLATIONS

logger = logging.getLogger(__name__)


def get_locale_from_request(request: Optional[Request] = None, default: str = "en") -> str:
    """Extract locale from request Accept-Language header or return default."""
    if request is None:
        return default

    accept_language = request.headers.get("Accept-Language", "")
    if not accept_language:
        return default

    # First language code of e.g. "ru-RU,ru;q=0.9,en;q=0.8"
    first_lang = accept_language.split(",")[0].split(";")[0].strip().lower()
    for locale in TRANSLATIONS:
        if first_lang.startswith(locale):
            return locale

    return default


def _catalogue(locale: Optional[str]) -> Dict[str, str]:
    code = (locale or "").lower().replace("_", "-")
    return TRANSLATIONS.get(code) or TRANSLATIONS.get(code.split("-")[0], {})


def get_translation(key: str, locale: Optional[str] = None, **kwargs) -> str:
    """Get translated message for a key, with optional formatting.

    Region tags resolve to their language ("ru-RU" reads "ru"). Unknown locales
    and keys missing from a catalogue fall back to ``DEFAULT_LOCALE``, then to
    English; a key found nowhere is returned as is.
    """
    for catalogue in (_catalogue(locale), _catalogue(settings.DEFAULT_LOCALE), TRANSLATIONS["en"]):
        if key in catalogue:
            message = catalogue[key]
            break
    else:
        return key

    if kwargs:
        try:
            message = message.format(**kwargs)
        except (KeyError, IndexError, ValueError):
            logger.warning("Could not format message %s with %s", key, sorted(kwargs))

    return message
