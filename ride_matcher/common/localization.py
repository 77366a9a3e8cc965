# ride_matcher/common/localization.py
"""
Модуль локализации.
Загружает тексты уведомлений из config/lang_dict.json.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

FALLBACK_LANGUAGE = "en"


def get_lang_dict_path() -> Path:
    """Возвращает путь к файлу локализации."""
    return Path(__file__).parent.parent.parent / "config" / "lang_dict.json"


@lru_cache()
def load_lang_dict() -> dict[str, dict[str, str]]:
    """
    Загружает словарь локализации из JSON файла.
    Кэширует результат для производительности.

    Returns:
        Словарь с переводами
    """
    lang_path = get_lang_dict_path()
    if not lang_path.exists():
        raise FileNotFoundError(f"Файл локализации не найден: {lang_path}")

    with open(lang_path, "r", encoding="utf-8") as f:
        return json.load(f)


def get_text(
    key: str,
    lang: str = FALLBACK_LANGUAGE,
    default: str | None = None,
    **kwargs: Any,
) -> str:
    """
    Получает локализованный текст по ключу.

    Args:
        key: Ключ перевода
        lang: Код языка (en, ru)
        default: Значение по умолчанию, если ключ не найден
        **kwargs: Параметры для форматирования строки

    Returns:
        Локализованный текст

    Example:
        >>> get_text("RIDE_ASSIGNED", "en", driver_name="Ravi")
        "Driver Ravi found! Waiting for acceptance..."
    """
    try:
        lang_dict = load_lang_dict()
    except FileNotFoundError:
        return default or f"[{key}]"

    translations = lang_dict.get(key)
    if not translations:
        return default or f"[{key}]"

    text = translations.get(lang) or translations.get(FALLBACK_LANGUAGE)
    if not text:
        text = next(iter(translations.values()), f"[{key}]")

    if kwargs:
        try:
            text = text.format(**kwargs)
        except KeyError:
            pass  # Отсутствующие плейсхолдеры оставляем как есть

    return text


def get_available_languages() -> list[str]:
    """Возвращает список языков, для которых есть переводы."""
    lang_dict = load_lang_dict()
    first_key = next(iter(lang_dict.values()), {})
    return list(first_key.keys())


def validate_lang_dict() -> list[str]:
    """
    Проверяет целостность словаря локализации.

    Returns:
        Список ошибок (пустой, если всё в порядке)
    """
    errors = []

    try:
        lang_dict = load_lang_dict()
    except FileNotFoundError as e:
        return [str(e)]

    available_langs = get_available_languages()

    for key, translations in lang_dict.items():
        if not isinstance(translations, dict):
            errors.append(f"Ключ '{key}' имеет неверный формат")
            continue

        missing_langs = set(available_langs) - set(translations.keys())
        if missing_langs:
            errors.append(f"Ключ '{key}' не имеет перевода для языков: {sorted(missing_langs)}")

    return errors
