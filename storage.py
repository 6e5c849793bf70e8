import copy
import json
import logging
import os
import shutil
import threading
import time
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class _StorageReadError(Exception):
    """Файл существует, но прочитать его не удалось."""


class JsonDocument:
    """
    Один JSON-документ на диске (items.json, activity.json, ...).

    Диск - единственный источник истины: каждое чтение идёт в файл, каждая
    запись полностью перезаписывает документ. Все read-modify-write операции
    выполняются под блокировкой документа через `transaction()`.
    """

    def __init__(self, path: str, default):
        self.path = path
        self.default = default
        self.lock = threading.RLock()

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    def _empty(self):
        return copy.deepcopy(self.default)

    def ensure(self):
        """Создаёт файл с пустым значением, если его ещё нет."""
        with self.lock:
            if not os.path.exists(self.path):
                self.save(self._empty())

    def load(self):
        """Читает документ. При любой проблеме возвращает пустое значение, а не ошибку."""
        with self.lock:
            try:
                return self._read()
            except _StorageReadError:
                return self._empty()

    def _read(self):
        """Как load(), но ошибку ввода-вывода не прячет: после неё документ перезаписывать нельзя."""
        with self.lock:
            try:
                if not os.path.exists(self.path):
                    return self._empty()
                with open(self.path, encoding='utf-8') as f:
                    raw = f.read()
            except OSError as e:
                logger.error(f"Ошибка чтения {self.name}: {e}")
                raise _StorageReadError(str(e)) from e

            if not raw.strip():
                return self._empty()

            try:
                data = json.loads(raw)
            except ValueError as e:
                logger.error(f"Повреждённый документ {self.name}: {e}")
                self._backup_corrupted()
                return self._empty()

            if not isinstance(data, type(self.default)):
                logger.warning(
                    f"Документ {self.name} содержит {type(data).__name__} "
                    f"вместо {type(self.default).__name__}"
                )
                self._backup_corrupted()
                return self._empty()
            return data

    def save(self, data) -> bool:
        with self.lock:
            tmp_path = f"{self.path}.tmp"
            try:
                with open(tmp_path, 'w', encoding='utf-8') as f:
                    json.dump(data, f, ensure_ascii=False, indent=2)
                os.replace(tmp_path, self.path)
                return True
            except (OSError, TypeError, ValueError) as e:
                logger.error(f"Ошибка сохранения {self.name}: {e}")
                return False

    @contextmanager
    def transaction(self):
        """
        Чтение, изменение и запись документа как одна операция.
        Если файл не удалось прочитать, изменения отбрасываются: пустое значение
        не должно затереть данные на диске.
        """
        with self.lock:
            try:
                data = self._read()
                readable = True
            except _StorageReadError:
                data = self._empty()
                readable = False
            yield data
            if readable:
                self.save(data)
            else:
                logger.warning(f"Запись в {self.name} пропущена: документ не прочитан")

    def _backup_corrupted(self):
        """Откладывает испорченный файл в сторону, чтобы его можно было восстановить вручную."""
        backup_path = f"{self.path}.backup.{int(time.time() * 1000)}"
        try:
            shutil.copyfile(self.path, backup_path)
            logger.warning(f"Создана резервная копия повреждённого файла: {backup_path}")
        except OSError as e:
            logger.error(f"Не удалось сохранить резервную копию {self.name}: {e}")
