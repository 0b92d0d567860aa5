# File: schemaforge/exporters.py
"""
NexaFlow SchemaForge - Project Exporter (File-System Manager)
===============================================================

The only component that touches the filesystem.  Responsible for:

    1. Optionally cleaning the output directory (``.git`` is preserved).
    2. Writing every ``GeneratedFile`` atomically, byte-for-byte as generated.
    3. Writing a ``.gitignore`` and an export manifest with checksums.
    4. Refusing paths that would escape the output root.

A failed write is recorded and the batch continues; each individual file is
atomic so a crash never leaves a half-written file behind.

Complexity: O(F) where F = total number of output files.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Sequence, Tuple

from schemaforge.models import GeneratedFile
from schemaforge.utils import Timer, clean_directory, ensure_directory, write_file

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.exporters")

MANIFEST_FILENAME: str = "schemaforge-manifest.json"

_GITIGNORE: str = "\n".join([
    "__pycache__/",
    "*.py[cod]",
    ".venv/",
    ".env",
    ".pytest_cache/",
    ".ruff_cache/",
    "*.db",
    "",
])


# ---------------------------------------------------------------------------
# Data classes for export results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileRecord:
    """Immutable record of a single exported file."""

    relative_path: str
    absolute_path: str
    size_bytes: int
    line_count: int
    sha256: str

    @classmethod
    def from_generated(cls, generated: GeneratedFile, target: Path) -> "FileRecord":
        return cls(
            relative_path=generated.path,
            absolute_path=str(target),
            size_bytes=generated.size_bytes,
            line_count=generated.line_count,
            sha256=generated.checksum,
        )


@dataclass
class ExportManifest:
    """
    Every exported file with its checksum.

    Serialisable to JSON so a later run can be compared file-by-file.
    """

    project_name: str = ""
    project_version: str = ""
    generator_version: str = ""
    profile: str = ""
    export_timestamp: str = ""
    output_directory: str = ""
    files: List[FileRecord] = field(default_factory=list)

    @property
    def total_files(self) -> int:
        return len(self.files)

    @property
    def total_bytes(self) -> int:
        return sum(f.size_bytes for f in self.files)

    @property
    def total_lines(self) -> int:
        return sum(f.line_count for f in self.files)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_name": self.project_name,
            "project_version": self.project_version,
            "generator_version": self.generator_version,
            "profile": self.profile,
            "export_timestamp": self.export_timestamp,
            "output_directory": self.output_directory,
            "total_files": self.total_files,
            "total_bytes": self.total_bytes,
            "total_lines": self.total_lines,
            "files": [
                {
                    "path": f.relative_path,
                    "size_bytes": f.size_bytes,
                    "line_count": f.line_count,
                    "sha256": f.sha256,
                }
                for f in self.files
            ],
        }

    def to_json(self, indent_size: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent_size, ensure_ascii=False)


@dataclass(frozen=True)
class ExportResult:
    """Final result returned by ``ProjectExporter.export()``."""

    success: bool
    manifest: ExportManifest
    errors: Tuple[str, ...]
    warnings: Tuple[str, ...]
    elapsed_seconds: float


def resolve_target(output_dir: Path, relative_path: str) -> Path:
    """
    Absolute destination of *relative_path* under *output_dir*.

    Raises:
        ValueError: If the path is absolute or climbs out of the root.
    """
    pure: PurePosixPath = PurePosixPath(relative_path)
    if pure.is_absolute() or ".." in pure.parts:
        raise ValueError(f"Refusing to write outside the output directory: {relative_path}")
    return output_dir.joinpath(*pure.parts)


# ---------------------------------------------------------------------------
# ProjectExporter class
# ---------------------------------------------------------------------------


class ProjectExporter:
    """
    Writes generated files to the filesystem.

    Usage::

        exporter = ProjectExporter(Path("./output"), project_name="blog")
        result = exporter.export(files)
        print(result.manifest.to_json())

    Thread-safety: NOT thread-safe.  Use one exporter per output directory.
    """

    def __init__(
        self,
        output_dir: Path,
        *,
        project_name: str = "",
        project_version: str = "",
        profile: str = "",
        clean_before_export: bool = False,
        atomic_writes: bool = True,
        write_manifest: bool = True,
        write_gitignore: bool = True,
    ) -> None:
        self._output_dir: Path = Path(output_dir).resolve()
        self._project_name: str = project_name
        self._project_version: str = project_version
        self._profile: str = profile
        self._clean_before_export: bool = clean_before_export
        self._atomic_writes: bool = atomic_writes
        self._write_manifest: bool = write_manifest
        self._write_gitignore: bool = write_gitignore

        self._errors: List[str] = []
        self._warnings: List[str] = []
        self._records: List[FileRecord] = []

        logger.debug(
            "ProjectExporter initialised: output_dir=%s, atomic=%s, clean=%s.",
            self._output_dir,
            self._atomic_writes,
            self._clean_before_export,
        )

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def export(self, files: Sequence[GeneratedFile]) -> ExportResult:
        """Write *files* and return the outcome with a checksum manifest."""
        self._errors = []
        self._warnings = []
        self._records = []

        with Timer("export") as timer:
            if self._clean_before_export:
                logger.info("Cleaning output directory: %s", self._output_dir)
                clean_directory(self._output_dir)
            ensure_directory(self._output_dir)

            for generated in files:
                self._write_generated(generated)

            if self._write_gitignore:
                self._write_support(GeneratedFile(path=".gitignore", content=_GITIGNORE))

        manifest: ExportManifest = self._build_manifest()
        if self._write_manifest:
            self._write_manifest_file(manifest)

        result: ExportResult = ExportResult(
            success=not self._errors,
            manifest=manifest,
            errors=tuple(self._errors),
            warnings=tuple(self._warnings),
            elapsed_seconds=timer.elapsed,
        )

        if result.success:
            logger.info(
                "Export completed: %d files, %d bytes, %.3fs.",
                manifest.total_files,
                manifest.total_bytes,
                timer.elapsed,
            )
        else:
            logger.error(
                "Export completed with %d error(s) in %.3fs.",
                len(self._errors),
                timer.elapsed,
            )
        return result

    # -----------------------------------------------------------------
    # Internal: file writing
    # -----------------------------------------------------------------

    def _write(self, generated: GeneratedFile) -> FileRecord:
        target: Path = resolve_target(self._output_dir, generated.path)
        write_file(target, generated.content, atomic=self._atomic_writes)
        return FileRecord.from_generated(generated, target)

    def _write_generated(self, generated: GeneratedFile) -> None:
        try:
            self._records.append(self._write(generated))
        except (OSError, ValueError) as exc:
            message: str = f"Failed to write {generated.path}: {type(exc).__name__}: {exc}"
            self._errors.append(message)
            logger.error(message)

    def _write_support(self, generated: GeneratedFile) -> None:
        """Support files never fail the export; problems become warnings."""
        target: Path = resolve_target(self._output_dir, generated.path)
        if target.exists():
            logger.debug("Keeping existing %s.", generated.path)
            return
        try:
            self._records.append(self._write(generated))
        except OSError as exc:
            message: str = f"Could not write support file {generated.path}: {exc}"
            self._warnings.append(message)
            logger.warning(message)

    # -----------------------------------------------------------------
    # Internal: manifest
    # -----------------------------------------------------------------

    def _build_manifest(self) -> ExportManifest:
        import schemaforge

        return ExportManifest(
            project_name=self._project_name,
            project_version=self._project_version,
            generator_version=schemaforge.__version__,
            profile=self._profile,
            export_timestamp=time.strftime("%Y-%m-%dT%H:%M:%S%z"),
            output_directory=str(self._output_dir),
            files=list(self._records),
        )

    def _write_manifest_file(self, manifest: ExportManifest) -> None:
        path: Path = self._output_dir / MANIFEST_FILENAME
        try:
            write_file(path, manifest.to_json() + "\n", atomic=self._atomic_writes)
            logger.debug("Wrote export manifest to %s.", path)
        except OSError as exc:
            self._warnings.append(f"Could not write manifest: {exc}")
            logger.warning("Failed to write manifest: %s", exc)


__all__: List[str] = [
    "MANIFEST_FILENAME",
    "FileRecord",
    "ExportManifest",
    "ExportResult",
    "resolve_target",
    "ProjectExporter",
]

logger.debug("schemaforge.exporters loaded - %d public symbols.", len(__all__))
