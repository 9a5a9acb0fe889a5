import json
from functools import lru_cache
from pathlib import Path
from typing import Optional

import config
from enums.text_entity import TextEntity

L10N_DIR = Path(__file__).resolve().parent.parent / "l10n"


class Localizator:
    _sections = {
        TextEntity.USER: "user",
        TextEntity.VENDOR: "vendor",
        TextEntity.COMMON: "common",
    }

    @staticmethod
    @lru_cache(maxsize=8)
    def _load(language: str) -> dict:
        with open(L10N_DIR / f"{language}.json", "r", encoding="UTF-8") as f:
            return json.loads(f.read())

    @staticmethod
    def get_text(entity: TextEntity, key: str, lang: Optional[str] = None) -> str:
        """
        Get localized text for given entity and key.

        Args:
            entity: Entity type (USER, VENDOR, COMMON)
            key: Localization key
            lang: Optional language code (e.g., "en").
                  If None, uses config.LANGUAGE (default).
                  Use this parameter in concurrent contexts (e.g., FastAPI routes)
                  to avoid global state race conditions.

        Returns:
            Localized text string

        Example:
            text = Localizator.get_text(TextEntity.USER, "order_placed_title", lang="en")
        """
        language = lang if lang is not None else config.LANGUAGE
        data = Localizator._load(language)
        return data[Localizator._sections[entity]][key]

    @staticmethod
    def get_currency_symbol() -> str:
        return config.CURRENCY_SYMBOL

    @staticmethod
    def format_price(amount: float) -> str:
        return f"{Localizator.get_currency_symbol()}{amount:.2f}"
