import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterable


def ensure_parent(path: Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def safe_unlink(path: os.PathLike[str] | str) -> None:
    try:
        Path(path).unlink(missing_ok=True)
    except Exception:
        return


def fsync_dir(parent: Path) -> None:
    """
    Ensure directory entry durability after atomic rename.
    """
    fd: int | None = None
    try:
        fd = os.open(parent, os.O_RDONLY)
        os.fsync(fd)
    finally:
        if fd is not None:
            os.close(fd)


def atomic_write_text(
    path: Path,
    text: str,
    *,
    encoding: str = "utf-8",
    newline: str = "\n",
    mode: int = 0o644,
) -> None:
    """
    Atomically write text to `path`.

    Guarantees:
      - readers either see the old complete file or the new complete file
      - no partial/truncated file on crash
      - temp file written in the same directory (atomic replace works)
      - file contents are fsync()'d before replace
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd: int | None = None
    tmp_path: Path | None = None

    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.",
            suffix=".tmp",
            dir=str(path.parent),
            text=True,
        )
        tmp_path = Path(tmp_name)

        with os.fdopen(fd, "w", encoding=encoding, newline=newline) as f:
            fd = None
            f.write(text)
            f.flush()
            os.fsync(f.fileno())

        try:
            os.chmod(tmp_path, mode)
        except Exception:
            pass

        os.replace(tmp_path, path)

        fsync_dir(path.parent)

    finally:
        if fd is not None:
            try:
                os.close(fd)
            except Exception:
                pass
        if tmp_path is not None and tmp_path.exists():
            safe_unlink(tmp_path)


def atomic_write_chunks(
    path: Path, chunks: Iterable[bytes], *, mode: int = 0o644
) -> int:
    """
    Stream `chunks` into a temp file next to `path`, then rename into place.

    Returns the number of bytes written. On any failure the temp file is
    removed and the previous content of `path` (if any) is left untouched.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd: int | None = None
    tmp_path: Path | None = None
    total = 0
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.",
            suffix=".part",
            dir=str(path.parent),
            text=False,
        )
        tmp_path = Path(tmp_name)

        with os.fdopen(fd, "wb") as f:
            fd = None
            for chunk in chunks:
                if not chunk:
                    continue
                f.write(chunk)
                total += len(chunk)
            f.flush()
            os.fsync(f.fileno())

        try:
            os.chmod(tmp_path, mode)
        except Exception:
            pass

        os.replace(tmp_path, path)
        fsync_dir(path.parent)
        return total
    finally:
        if fd is not None:
            try:
                os.close(fd)
            except Exception:
                pass
        if tmp_path is not None and tmp_path.exists():
            safe_unlink(tmp_path)


def atomic_move(src: Path, dst: Path) -> None:
    """
    Rename `src` to `dst` (same filesystem) and fsync the target directory.
    """
    ensure_parent(dst)
    os.replace(src, dst)
    fsync_dir(Path(dst).parent)


def remove_tree(path: Path) -> bool:
    """
    Remove a directory tree. Returns False when there was nothing to remove.
    """
    path = Path(path)
    if not path.exists():
        return False
    shutil.rmtree(path)
    return True
