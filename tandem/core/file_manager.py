"""
File Manager - Persistence Layer for Tandem

Provides atomic file operations resolved against the workspace root.
Relative paths are joined to the root; absolute paths are used as given.
No sandboxing is applied beyond path resolution.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional, Union


class FileManager:
    """
    File manager with atomic writes and workspace-relative path resolution.

    When no workspace is open, relative paths resolve against the process
    current directory.
    """

    def __init__(self, base_path: Optional[Union[str, Path]] = None):
        """
        Initialize FileManager with a workspace root directory.

        Args:
            base_path: Root directory for relative paths (None = current dir)

        Raises:
            ValueError: If base_path is given but is not an existing directory
        """
        self.base_path = Path(base_path).resolve() if base_path else Path.cwd().resolve()

        if not self.base_path.exists():
            raise ValueError(f"Base path does not exist: {self.base_path}")
        if not self.base_path.is_dir():
            raise ValueError(f"Base path is not a directory: {self.base_path}")

    def resolve(self, path: Union[str, Path]) -> Path:
        """
        Resolve a path against the workspace root.

        Args:
            path: Relative or absolute path

        Returns:
            Absolute Path
        """
        target = Path(os.path.expanduser(str(path)))
        if not target.is_absolute():
            target = self.base_path / target
        return target.resolve()

    def write_file(self, path: Union[str, Path], content: str, encoding: str = 'utf-8') -> Path:
        """
        Atomically write content to a file, creating parent directories.

        Uses a temporary file in the same directory and os.replace, so an
        interrupted write never leaves a half-written target. Existing files
        are overwritten.

        Args:
            path: Path to the file (relative to workspace or absolute)
            content: Text content to write
            encoding: Text encoding (default: utf-8)

        Returns:
            The resolved path that was written

        Raises:
            OSError: If the write fails
        """
        target_path = self.resolve(path)

        target_path.parent.mkdir(parents=True, exist_ok=True)

        temp_fd, temp_path = tempfile.mkstemp(
            dir=target_path.parent,
            prefix=f".{target_path.name}.",
            suffix=".tmp"
        )

        try:
            with os.fdopen(temp_fd, 'w', encoding=encoding) as temp_file:
                temp_file.write(content)
                temp_file.flush()
                os.fsync(temp_file.fileno())

            os.replace(temp_path, target_path)

        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass  # already gone
            raise OSError(f"Failed to write file '{target_path}': {e}") from e

        return target_path

    def read_file(self, path: Union[str, Path], encoding: str = 'utf-8') -> str:
        """
        Read content from a file.

        Args:
            path: Path to the file (relative to workspace or absolute)
            encoding: Text encoding (default: utf-8)

        Returns:
            File content as string

        Raises:
            FileNotFoundError: If file doesn't exist
            OSError: If the path is not a file or cannot be read
        """
        target_path = self.resolve(path)

        if not target_path.exists():
            raise FileNotFoundError(f"File not found: {target_path}")

        if not target_path.is_file():
            raise OSError(f"Path is not a file: {target_path}")

        try:
            with open(target_path, 'r', encoding=encoding) as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise OSError(f"Failed to read file '{target_path}': {e}") from e
