"""
Template Store - Editable Message Templates
===========================================

One plain-text file per job under the templates directory. A missing
file is created from the built-in default on first read, so operators
always have something to edit.
"""

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Union

logger = logging.getLogger(__name__)

REVIEW_REQUEST_TEMPLATE = (
    "{greeting}\n"
    "{brand} would love your feedback! Leave a review here: {review_url}"
)

LOCKER_REMINDER_TEMPLATE = (
    "{greeting}\n\n"
    "Your locker booking with {brand} ended an hour ago. If you have picked up "
    "your items, thank you! Otherwise, please do so or contact Support."
)

DEFAULT_TEMPLATES: Dict[str, str] = {
    "daily_review_request": REVIEW_REQUEST_TEMPLATE,
    "locker_pickup_reminder": LOCKER_REMINDER_TEMPLATE,
}

MAX_TEMPLATE_LENGTH = 1600


class TemplateStore:
    """
    Usage:
        store = TemplateStore("data/templates")
        text = store.get("daily_review_request")
        store.set("daily_review_request", "Hi {first_name} ...")
    """

    def __init__(self, directory: Union[str, Path], defaults: Dict[str, str] = None):
        self._dir = Path(directory)
        self._defaults = dict(defaults if defaults is not None else DEFAULT_TEMPLATES)
        self._lock = threading.Lock()

    def _path(self, name: str) -> Path:
        if name not in self._defaults:
            raise KeyError(name)
        return self._dir / f"{name}.txt"

    def default(self, name: str) -> str:
        self._path(name)
        return self._defaults[name]

    def get(self, name: str) -> str:
        path = self._path(name)
        with self._lock:
            if not path.exists():
                self._write(path, self._defaults[name])
                logger.info(f"Created default template {path}")
            return path.read_text(encoding="utf-8")

    def set(self, name: str, text: str) -> None:
        path = self._path(name)
        if not text or not text.strip():
            raise ValueError("Template must not be empty")
        if len(text) > MAX_TEMPLATE_LENGTH:
            raise ValueError(f"Template exceeds {MAX_TEMPLATE_LENGTH} characters")
        with self._lock:
            self._write(path, text)
        logger.info(f"Template '{name}' updated")

    def reset(self, name: str) -> str:
        """Restore the built-in default and return it."""
        path = self._path(name)
        with self._lock:
            self._write(path, self._defaults[name])
        return self._defaults[name]

    def _write(self, path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".txt")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, path)
