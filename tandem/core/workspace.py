"""
Workspace Inspector for Tandem.

Produces the textual workspace snapshot injected into the system prompt, and
locates source files for message enrichment.

Snapshot contents:
- Workspace name and root path
- Detected project types (Python, Node, Salesforce DX)
- Top-level folders and files
- Active editor file with language, line count and a short preview

The core treats the snapshot as an opaque string.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

NO_WORKSPACE = "No workspace open."

# Listing bounds
MAX_LISTED_ENTRIES = 20
MAX_LISTED_DEPENDENCIES = 15
PREVIEW_LINES = 50

# Review bundle bounds (characters)
REVIEW_BUNDLE_MAX_CHARS = 15_000
REVIEW_FILE_MAX_CHARS = 4_000

IGNORED_DIRS = {"node_modules", "__pycache__", "venv", ".venv", "dist", "build"}

LANGUAGE_BY_SUFFIX: Dict[str, str] = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascriptreact",
    ".ts": "typescript",
    ".tsx": "typescriptreact",
    ".html": "html",
    ".css": "css",
    ".json": "json",
    ".md": "markdown",
    ".sh": "shellscript",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".cls": "apex",
    ".trigger": "apex",
    ".cmp": "aura",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
}

SOURCE_SUFFIXES = {
    ".py", ".js", ".jsx", ".ts", ".tsx", ".go", ".rs", ".java",
    ".cls", ".trigger", ".cmp", ".html", ".css",
}


def detect_language(path: Path) -> str:
    """Map a file suffix to an editor language id ("plaintext" if unknown)."""
    return LANGUAGE_BY_SUFFIX.get(path.suffix.lower(), "plaintext")


class WorkspaceInspector:
    """
    Builds workspace snapshots for one workspace root.

    Example:
        >>> inspector = WorkspaceInspector(Path("/work/app"), active_file=Path("main.py"))
        >>> print(inspector.snapshot())
        Workspace: app
        Root path: /work/app
        Project type: Python
        ...
    """

    def __init__(self, root: Optional[Path] = None, active_file: Optional[Path] = None):
        self.root = Path(root).resolve() if root else None
        self.active_file = Path(active_file) if active_file else None

    # ========================================================================
    # SNAPSHOT
    # ========================================================================

    def snapshot(self) -> str:
        """
        Build the workspace snapshot text.

        Returns:
            Multi-line description, or "No workspace open." without a root.
        """
        if self.root is None or not self.root.is_dir():
            return NO_WORKSPACE

        parts: List[str] = [
            f"Workspace: {self.root.name}",
            f"Root path: {self.root}",
        ]

        parts.extend(self._describe_project_types())
        parts.extend(self._describe_listing())
        parts.extend(self._describe_active_file())

        return "\n".join(parts)

    def _describe_project_types(self) -> List[str]:
        parts: List[str] = []
        root = self.root

        sfdx_file = root / "sfdx-project.json"
        if sfdx_file.exists():
            parts.append("Project type: Salesforce DX (SFDX)")
            sfdx = self._load_json(sfdx_file)
            package_dirs = [d.get("path", "") for d in sfdx.get("packageDirectories", [])]
            if package_dirs:
                parts.append(f"Package dirs: {', '.join(package_dirs)}")

        package_file = root / "package.json"
        if package_file.exists():
            pkg = self._load_json(package_file)
            parts.append(f"Node project: {pkg.get('name') or 'unnamed'}")
            if pkg.get("scripts"):
                parts.append(f"Scripts: {', '.join(pkg['scripts'].keys())}")
            if pkg.get("dependencies"):
                deps = list(pkg["dependencies"].keys())[:MAX_LISTED_DEPENDENCIES]
                parts.append(f"Dependencies: {', '.join(deps)}")

        if (root / "pyproject.toml").exists() or (root / "requirements.txt").exists():
            parts.append("Project type: Python")

        return parts

    def _describe_listing(self) -> List[str]:
        try:
            items = sorted(
                p for p in self.root.iterdir()
                if not p.name.startswith(".") and p.name != "node_modules"
            )
        except OSError as e:
            logger.warning(f"Cannot list workspace {self.root}: {e}")
            return []

        dirs = [p.name for p in items if p.is_dir()]
        files = [p.name for p in items if not p.is_dir()]

        parts = []
        if dirs:
            parts.append(f"Folders: {', '.join(dirs[:MAX_LISTED_ENTRIES])}")
        if files:
            parts.append(f"Files: {', '.join(files[:MAX_LISTED_ENTRIES])}")
        return parts

    def _describe_active_file(self) -> List[str]:
        if self.active_file is None:
            return []

        path = self.active_file if self.active_file.is_absolute() else self.root / self.active_file
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return []

        try:
            rel = path.resolve().relative_to(self.root)
        except ValueError:
            rel = path

        lines = text.split("\n")
        parts = [f"Open file: {rel} ({detect_language(path)}, {len(lines)} lines)"]
        preview = "\n".join(lines[:PREVIEW_LINES])
        if preview:
            parts.append(f"Current file preview:\n{preview}")
        return parts

    @staticmethod
    def _load_json(path: Path) -> dict:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.debug(f"Ignoring unreadable {path.name}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    # ========================================================================
    # SOURCE DISCOVERY
    # ========================================================================

    def iter_source_files(self) -> List[Path]:
        """List source files under the root, skipping hidden and vendored dirs."""
        if self.root is None:
            return []

        found = []
        for path in sorted(self.root.rglob("*")):
            rel_parts = path.relative_to(self.root).parts
            if any(part.startswith(".") or part in IGNORED_DIRS for part in rel_parts):
                continue
            if path.is_file() and path.suffix.lower() in SOURCE_SUFFIXES:
                found.append(path)
        return found

    def find_file(self, name: str) -> Optional[Path]:
        """
        Locate a file mentioned by the user.

        Tries the name as a workspace-relative path first, then the first
        source file whose name matches.
        """
        if self.root is None:
            return None

        direct = self.root / name
        if direct.is_file():
            return direct

        base = Path(name).name
        for path in self.iter_source_files():
            if path.name == base:
                return path
        return None

    def collect_sources(
        self,
        max_total: int = REVIEW_BUNDLE_MAX_CHARS,
        max_per_file: int = REVIEW_FILE_MAX_CHARS
    ) -> str:
        """
        Bundle project source files for a code review request.

        Each file is rendered as "=== rel/path ===" followed by its content,
        cut to max_per_file characters. Collection stops once max_total
        characters have been gathered.

        Returns:
            The bundle, or "" if there is nothing to read.
        """
        sections: List[str] = []
        total = 0

        for path in self.iter_source_files():
            if total >= max_total:
                break
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue

            excerpt = content[:max_per_file]
            suffix = "\n...(truncated)" if len(content) > max_per_file else ""
            rel = path.relative_to(self.root).as_posix()
            sections.append(f"=== {rel} ===\n{excerpt}{suffix}")
            total += len(excerpt)

        return "\n\n".join(sections)


def inspector_for(root: Optional[Path], active_file: Optional[Path] = None) -> WorkspaceInspector:
    """Build an inspector for a session's current workspace state."""
    return WorkspaceInspector(root, active_file=active_file)


__all__ = [
    "WorkspaceInspector",
    "NO_WORKSPACE",
    "detect_language",
    "inspector_for",
    "REVIEW_BUNDLE_MAX_CHARS",
    "REVIEW_FILE_MAX_CHARS",
]
