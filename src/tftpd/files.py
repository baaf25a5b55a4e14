from __future__ import annotations

import os
from dataclasses import dataclass
from typing import BinaryIO

from .errors import AccessViolation, FileNotFound, IOFailure


@dataclass(frozen=True, slots=True)
class FileStore:
    """Maps request filenames onto files below the read and write roots.

    Names that resolve outside their root (absolute paths, ``..`` components,
    symlinks pointing elsewhere) are refused with an access violation.
    Concurrent sessions on the same file are not coordinated here.
    """

    read_root: str
    write_root: str

    @staticmethod
    def resolve(root: str, filename: bytes) -> str:
        name = os.fsdecode(filename)
        if not name or "\x00" in name or os.path.isabs(name):
            raise AccessViolation(f"illegal filename {name!r}")

        root_abs = os.path.realpath(root)
        path = os.path.realpath(os.path.join(root_abs, name))
        if path == root_abs or os.path.commonpath([root_abs, path]) != root_abs:
            raise AccessViolation(f"{name!r} is outside the served directory")
        return path

    def open_for_read(self, filename: bytes) -> BinaryIO:
        path = self.resolve(self.read_root, filename)
        try:
            return open(path, "rb")
        except FileNotFoundError:
            raise FileNotFound(f"File not found: {os.fsdecode(filename)}") from None
        except (IsADirectoryError, PermissionError) as exc:
            raise AccessViolation(f"cannot read {os.fsdecode(filename)}: {exc.strerror}") from exc
        except OSError as exc:
            raise IOFailure(f"cannot open {os.fsdecode(filename)}: {exc.strerror}") from exc

    def open_for_write(self, filename: bytes) -> BinaryIO:
        path = self.resolve(self.write_root, filename)
        try:
            return open(path, "wb")
        except (FileNotFoundError, IsADirectoryError, PermissionError) as exc:
            raise AccessViolation(f"cannot write {os.fsdecode(filename)}: {exc.strerror}") from exc
        except OSError as exc:
            raise IOFailure(f"cannot create {os.fsdecode(filename)}: {exc.strerror}") from exc
