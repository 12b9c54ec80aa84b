"""
Named persistence of question sets.

Snapshots keep full geometry, so a loaded quiz plays without geocoding
again. The backing medium is a key-value text store: one JSON file per quiz
in a directory, or a dict in memory.
"""
import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote, unquote

from .errors import InvalidNameError, QuizNotFoundError, QuotaExceededError
from .models import GeographicFeature, Question
from .question_set import QuestionSet

SNAPSHOT_VERSION = 1
DEFAULT_MAX_BYTES = 5 * 1024 * 1024  # 5MB per saved quiz


class MemoryBackend:
    """Key-value store held in a dict."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> List[str]:
        return list(self._data.keys())


class JsonDirectoryBackend:
    """Key-value store with one UTF-8 ``.json`` file per key."""

    SUFFIX = ".json"

    def __init__(self, directory: str = "./saved_quizzes/"):
        self.directory = Path(directory)
        self.logger = logging.getLogger(__name__)

    def _path(self, key: str) -> Path:
        return self.directory / (quote(key, safe="") + self.SUFFIX)

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        with open(path, 'r', encoding='utf-8') as f:
            return f.read()

    def set(self, key: str, value: str) -> None:
        """Write atomically: the old file stays intact until the new one is complete."""
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(value)
            os.replace(temp_path, self._path(key))
        except BaseException:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.exists():
            return False
        path.unlink()
        return True

    def keys(self) -> List[str]:
        if not self.directory.exists():
            return []
        return [unquote(p.name[:-len(self.SUFFIX)]) for p in self.directory.glob("*" + self.SUFFIX)]


class QuizStore:
    """Saves, loads, lists and deletes named quizzes."""

    def __init__(self, backend=None, max_bytes: int = DEFAULT_MAX_BYTES):
        """
        Initialize QuizStore.

        Args:
            backend: Key-value backend (get/set/delete/keys); in-memory if None
            max_bytes: Largest serialized snapshot accepted by save()
        """
        self.backend = backend if backend is not None else MemoryBackend()
        self.max_bytes = max_bytes
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def normalize_name(name: str) -> str:
        """
        Trim a quiz name.

        Raises:
            InvalidNameError: If the name is empty or blank
        """
        if not isinstance(name, str) or not name.strip():
            raise InvalidNameError("Quiz name cannot be empty")
        return name.strip()

    def save(self, name: str, question_set: QuestionSet) -> str:
        """
        Persist a question set under ``name``, replacing any previous save.

        Returns:
            The normalized name

        Raises:
            InvalidNameError: Empty or blank name
            QuotaExceededError: Snapshot too large or the backend refused the write;
                whatever was saved before is left as it was
        """
        key = self.normalize_name(name)
        payload = json.dumps(self.serialize(key, question_set), ensure_ascii=False)

        size = len(payload.encode('utf-8'))
        if size > self.max_bytes:
            self.logger.error(f"Quiz '{key}' is {size} bytes, limit is {self.max_bytes}")
            raise QuotaExceededError(
                f"Quiz '{key}' is too large to save ({size / 1024:.1f}KB, limit {self.max_bytes / 1024:.0f}KB)"
            )

        try:
            self.backend.set(key, payload)
        except OSError as e:
            self.logger.error(f"Storage rejected quiz '{key}': {e}")
            raise QuotaExceededError(f"Storage rejected quiz '{key}': {e}") from e

        self.logger.info(f"Saved quiz '{key}' with {len(question_set)} questions")
        return key

    def load(self, name: str) -> QuestionSet:
        """
        Load a saved quiz.

        Raises:
            InvalidNameError: Empty or blank name
            QuizNotFoundError: Nothing saved under the name, or the snapshot is unreadable
        """
        key = self.normalize_name(name)
        try:
            payload = self.backend.get(key)
        except UnicodeDecodeError as e:
            self.logger.error(f"Quiz '{key}' is not valid UTF-8: {e}")
            raise QuizNotFoundError(key, "invalid snapshot: not UTF-8") from e
        except OSError as e:
            self.logger.error(f"Failed to read quiz '{key}': {e}")
            raise QuizNotFoundError(key, f"read failed: {e}") from e
        if payload is None:
            raise QuizNotFoundError(key)

        try:
            question_set = self.deserialize(json.loads(payload))
        except (ValueError, KeyError, TypeError) as e:
            self.logger.error(f"Invalid snapshot for quiz '{key}': {e}")
            raise QuizNotFoundError(key, f"invalid snapshot: {e}") from e

        self.logger.info(f"Loaded quiz '{key}' with {len(question_set)} questions")
        return question_set

    def delete(self, name: str) -> None:
        """
        Raises:
            InvalidNameError: Empty or blank name
            QuizNotFoundError: Nothing saved under the name, or the backend cannot reach it
        """
        key = self.normalize_name(name)
        try:
            deleted = self.backend.delete(key)
        except OSError as e:
            self.logger.error(f"Failed to delete quiz '{key}': {e}")
            raise QuizNotFoundError(key, f"delete failed: {e}") from e
        if not deleted:
            raise QuizNotFoundError(key)
        self.logger.info(f"Deleted quiz '{key}'")

    def exists(self, name: str) -> bool:
        try:
            return self.normalize_name(name) in self.backend.keys()
        except InvalidNameError:
            return False

    def list(self) -> List[str]:
        """Saved quiz names, sorted case-insensitively."""
        return sorted(self.backend.keys(), key=lambda n: (n.casefold(), n))

    @staticmethod
    def serialize(name: str, question_set: QuestionSet) -> Dict[str, Any]:
        return {
            "name": name,
            "version": SNAPSHOT_VERSION,
            "saved_at": datetime.now().isoformat(timespec="seconds"),
            "questions": [
                {
                    "prompt": q.prompt,
                    "place_name": q.place_name,
                    "target": q.target.to_geojson(),
                }
                for q in question_set
            ],
        }

    @staticmethod
    def deserialize(data: Dict[str, Any]) -> QuestionSet:
        """
        Rebuild a QuestionSet from a snapshot.

        Expected structure:
        {
            "version": 1,
            "questions": [
                {"prompt": str, "place_name": str, "target": GeoJSON Feature}
            ]
        }
        """
        if not isinstance(data, dict):
            raise ValueError("Snapshot must be a JSON object")
        if data.get("version", SNAPSHOT_VERSION) != SNAPSHOT_VERSION:
            raise ValueError(f"Unsupported snapshot version {data.get('version')!r}")

        questions = data["questions"]
        if not isinstance(questions, list):
            raise ValueError("'questions' must be an array")

        question_set = QuestionSet()
        for i, entry in enumerate(questions):
            if not isinstance(entry, dict) or not isinstance(entry.get("place_name"), str):
                raise ValueError(f"Question {i} needs a 'place_name' string")
            question_set.append(Question(
                place_name=entry["place_name"],
                target=GeographicFeature.from_geojson(entry["target"]),
                prompt=entry.get("prompt") or "",
            ))
        return question_set
