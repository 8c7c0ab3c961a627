"""Message catalogues for user-facing notifications."""
from __future__ import annotations

from typing import Dict

TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "en": {
        "errors.create_failed": "Failed to add task. Please try again.",
        "errors.update_failed": "Failed to update task. Please try again.",
        "errors.reorder_failed": "Failed to reorder tasks. Please try again.",
        "errors.move_failed": "Failed to move task. Please try again.",
        "errors.delete_failed": "Failed to delete task. Please try again.",
        "errors.validation_error": "Task is invalid: {detail}",
        "errors.resource_not_found": "Resource not found",
        "errors.endpoint_unavailable": "Task service is unavailable",
        "notices.task_missing": "Task {task_id} no longer exists. The board was restored.",
    },
    "ru": {
        "errors.create_failed": "Не удалось добавить задачу. Попробуйте еще раз.",
        "errors.update_failed": "Не удалось обновить задачу. Попробуйте еще раз.",
        "errors.reorder_failed": "Не удалось изменить порядок задач. Попробуйте еще раз.",
        "errors.move_failed": "Не удалось переместить задачу. Попробуйте еще раз.",
        "errors.delete_failed": "Не удалось удалить задачу. Попробуйте еще раз.",
        "errors.validation_error": "Некорректная задача: {detail}",
        "errors.resource_not_found": "Ресурс не найден",
        "errors.endpoint_unavailable": "Сервис задач недоступен",
        "notices.task_missing": "Задача {task_id} больше не существует. Доска восстановлена.",
    },
}
