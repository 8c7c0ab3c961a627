"""Tests for localization helpers."""
from boardsync.localization import helpers
from boardsync.localization.helpers import get_translation


def test_region_tag_uses_language_catalogue():
    assert get_translation("errors.delete_failed", "ru-RU") == "Не удалось удалить задачу. Попробуйте еще раз."


def test_unknown_locale_falls_back_to_default_locale(monkeypatch):
    monkeypatch.setattr(helpers.settings, "DEFAULT_LOCALE", "ru")

    assert get_translation("errors.resource_not_found", "de") == "Ресурс не найден"
    assert get_translation("errors.resource_not_found") == "Ресурс не найден"


def test_unknown_key_is_returned_as_is():
    assert get_translation("errors.unknown", "en") == "errors.unknown"


def test_missing_format_argument_keeps_template():
    message = get_translation("notices.task_missing", "en", detail="x")

    assert message == "Task {task_id} no longer exists. The board was restored."
