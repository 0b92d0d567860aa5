# File: schemaforge/generator.py
"""
NexaFlow SchemaForge - Master Generation Pipeline (Orchestrator)
==================================================================

Connects every phase together:

    Manifest file → Validation → Compile → Profile pipeline → File Export

Workflow::

    1. Read the JSON/YAML manifest (json_input.py).
    2. Batch-validate the raw document (validators.py).
    3. Compile it into a frozen ``ManifestIR`` (json_input.py / manifest.py).
    4. Run the profile's pipeline steps in order (registry.py).
    5. Hand the ``GeneratedFile`` list to ``ProjectExporter`` (exporters.py).
    6. Return a ``GenerationReport`` with metrics and status.

Error handling strategy:
    - Validation issues are collected and surfaced, not swallowed.
    - A ``ConfigurationError`` stops the run before any generator executes.
    - A generator failure is recorded against its step; no files are
      exported from a run with generation errors.
    - The final report gives a clear pass/fail verdict per stage.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from schemaforge.context import GeneratorContext, create_context
from schemaforge.errors import ConfigurationError, ManifestLoadError, SchemaForgeError
from schemaforge.exporters import ExportManifest, ExportResult, ProjectExporter
from schemaforge.json_input import parse_manifest_json, read_manifest_data
from schemaforge.models import GeneratedFile, ManifestIR, OutputConfig
from schemaforge.registry import StackProfile, StepOutcome, default_profile_id, get_profile
from schemaforge.utils import Timer
from schemaforge.validators import ValidationResult, validate_manifest

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.generator")


# ---------------------------------------------------------------------------
# Generation report
# ---------------------------------------------------------------------------


@dataclass
class GenerationStepMetric:
    """Timing and outcome for a single pipeline step."""

    step_name: str = ""
    success: bool = True
    elapsed_seconds: float = 0.0
    detail: str = ""


@dataclass
class GenerationReport:
    """
    Report produced by every ``CodeGenerator`` entry point.

    Errors are kept per stage so callers (the CLI in particular) can tell
    bad input from a bad manifest from a failed write.
    """

    success: bool = False
    project_name: str = ""
    profile: str = ""
    output_directory: str = ""

    total_files: int = 0
    total_bytes: int = 0
    total_lines: int = 0
    total_elapsed_seconds: float = 0.0

    step_metrics: List[GenerationStepMetric] = field(default_factory=list)
    input_errors: List[str] = field(default_factory=list)
    validation_errors: List[str] = field(default_factory=list)
    validation_warnings: List[str] = field(default_factory=list)
    configuration_errors: List[str] = field(default_factory=list)
    generation_errors: List[str] = field(default_factory=list)
    export_errors: List[str] = field(default_factory=list)
    skipped_steps: List[str] = field(default_factory=list)

    files: List[GeneratedFile] = field(default_factory=list)
    manifest: Optional[ExportManifest] = None

    @property
    def has_errors(self) -> bool:
        return bool(
            self.input_errors
            or self.validation_errors
            or self.configuration_errors
            or self.generation_errors
            or self.export_errors
        )

    def add_step(self, name: str, success: bool, elapsed: float, detail: str = "") -> None:
        self.step_metrics.append(
            GenerationStepMetric(
                step_name=name, success=success, elapsed_seconds=elapsed, detail=detail
            )
        )

    def summary(self) -> str:
        """Human-readable summary."""
        lines: List[str] = []
        status: str = "SUCCESS" if self.success else "FAILED"
        lines.append("=" * 60)
        lines.append("  NexaFlow SchemaForge - Generation Report")
        lines.append("=" * 60)
        lines.append(f"  Status:           {status}")
        lines.append(f"  Project:          {self.project_name}")
        lines.append(f"  Profile:          {self.profile}")
        if self.output_directory:
            lines.append(f"  Output:           {self.output_directory}")
        lines.append(f"  Files generated:  {self.total_files}")
        lines.append(f"  Total lines:      {self.total_lines:,}")
        lines.append(f"  Total bytes:      {self.total_bytes:,}")
        lines.append(f"  Total time:       {self.total_elapsed_seconds:.3f}s")
        lines.append("-" * 60)

        if self.step_metrics:
            lines.append("  Pipeline Steps:")
            for step in self.step_metrics:
                icon: str = "+" if step.success else "x"
                lines.append(
                    f"    {icon} {step.step_name:<28s} "
                    f"{step.elapsed_seconds:>7.3f}s  {step.detail}"
                )

        sections = (
            ("Input Errors", self.input_errors, "x"),
            ("Validation Errors", self.validation_errors, "x"),
            ("Validation Warnings", self.validation_warnings, "!"),
            ("Configuration Errors", self.configuration_errors, "x"),
            ("Generation Errors", self.generation_errors, "x"),
            ("Export Errors", self.export_errors, "x"),
            ("Skipped Steps", self.skipped_steps, "-"),
        )
        for title, items, icon in sections:
            if not items:
                continue
            lines.append("-" * 60)
            lines.append(f"  {title} ({len(items)}):")
            for item in items:
                lines.append(f"    {icon} {item}")

        lines.append("=" * 60)
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# CodeGenerator - Master orchestrator
# ---------------------------------------------------------------------------


class CodeGenerator:
    """
    Master pipeline orchestrator.

    Usage::

        generator = CodeGenerator()

        # From a manifest file
        report = generator.generate_from_file(
            Path("schemaforge.yaml"), Path("./output")
        )

        # From an already compiled manifest
        report = generator.generate(manifest, Path("./output"))

        print(report.summary())

    The generator is reusable; create once, call ``generate()`` many times.
    """

    def __init__(
        self,
        *,
        profile_id: Optional[str] = None,
        strict_protection: bool = False,
        fail_on_warnings: bool = False,
        clean_output: bool = False,
    ) -> None:
        """
        Args:
            profile_id: Registered stack profile; defaults to the default profile.
            strict_protection: Treat protection without auth as an error.
            fail_on_warnings: Treat validation warnings as errors.
            clean_output: Wipe the output directory before writing.

        Raises:
            ConfigurationError: If *profile_id* is not registered.
        """
        resolved_id: str = profile_id or default_profile_id()
        profile: Optional[StackProfile] = get_profile(resolved_id)
        if profile is None:
            raise ConfigurationError(
                f"Unknown profile '{resolved_id}'", {"profile": resolved_id}
            )
        self._profile: StackProfile = profile
        self._strict_protection: bool = strict_protection
        self._fail_on_warnings: bool = fail_on_warnings
        self._clean_output: bool = clean_output

        logger.debug(
            "CodeGenerator initialised: profile=%s, strict_protection=%s, "
            "fail_on_warnings=%s, clean=%s.",
            profile.id,
            strict_protection,
            fail_on_warnings,
            clean_output,
        )

    @property
    def profile(self) -> StackProfile:
        return self._profile

    def output_config(self, overrides: Optional[Dict[str, Any]] = None) -> OutputConfig:
        """Profile defaults with *overrides* applied (``None`` values ignored)."""
        data: Dict[str, Any] = self._profile.default_config.model_dump()
        data.update({k: v for k, v in (overrides or {}).items() if v is not None})
        return OutputConfig.model_validate(data)

    # -----------------------------------------------------------------
    # Public: generate from file
    # -----------------------------------------------------------------

    def generate_from_file(
        self,
        manifest_path: Path,
        output_dir: Optional[Path],
        *,
        config_overrides: Optional[Dict[str, Any]] = None,
    ) -> GenerationReport:
        """
        Full pipeline: read → validate → compile → generate → export.

        With *output_dir* ``None`` nothing is written (dry run); the
        generated files are still available on ``report.files``.
        """
        report: GenerationReport = self._new_report(output_dir)
        start: float = time.perf_counter()

        with Timer("load_manifest") as t_load:
            try:
                raw: Dict[str, Any] = read_manifest_data(manifest_path)
            except ManifestLoadError as exc:
                report.input_errors.append(str(exc))
                report.add_step("Load Manifest", False, t_load.elapsed, exc.message)
                return self._finalise(report, start)
        report.add_step("Load Manifest", True, t_load.elapsed, f"from {Path(manifest_path).name}")

        if not self._step_validate(raw, report):
            return self._finalise(report, start)

        with Timer("compile_manifest") as t_compile:
            try:
                manifest: ManifestIR = parse_manifest_json(raw, self._strict_protection)
            except SchemaForgeError as exc:
                report.configuration_errors.append(str(exc))
                report.add_step("Compile Manifest", False, t_compile.elapsed, exc.message)
                return self._finalise(report, start)
        report.add_step(
            "Compile Manifest", True, t_compile.elapsed, f"{len(manifest.entities)} entities"
        )

        return self._run(manifest, output_dir, config_overrides, report, start)

    # -----------------------------------------------------------------
    # Public: generate from a compiled manifest
    # -----------------------------------------------------------------

    def generate(
        self,
        manifest: ManifestIR,
        output_dir: Optional[Path],
        *,
        config_overrides: Optional[Dict[str, Any]] = None,
    ) -> GenerationReport:
        """Pipeline from an already compiled ``ManifestIR``."""
        report: GenerationReport = self._new_report(output_dir)
        return self._run(manifest, output_dir, config_overrides, report, time.perf_counter())

    def generate_files(
        self,
        manifest: ManifestIR,
        config: Optional[OutputConfig] = None,
    ) -> List[GeneratedFile]:
        """
        Run the pipeline without touching the filesystem.

        Raises the first generator failure instead of recording it.
        """
        report: GenerationReport = self._new_report(None)
        files: List[GeneratedFile] = self._step_generate(
            manifest, create_context(manifest, config or self._profile.default_config), report
        )
        if report.generation_errors:
            raise SchemaForgeError(report.generation_errors[0])
        return files

    # -----------------------------------------------------------------
    # Internal: pipeline
    # -----------------------------------------------------------------

    def _new_report(self, output_dir: Optional[Path]) -> GenerationReport:
        report: GenerationReport = GenerationReport(profile=self._profile.id)
        if output_dir is not None:
            report.output_directory = str(Path(output_dir).resolve())
        return report

    def _run(
        self,
        manifest: ManifestIR,
        output_dir: Optional[Path],
        config_overrides: Optional[Dict[str, Any]],
        report: GenerationReport,
        start: float,
    ) -> GenerationReport:
        report.project_name = manifest.name
        try:
            config: OutputConfig = self.output_config(config_overrides)
        except ValueError as exc:
            report.configuration_errors.append(f"Invalid output options: {exc}")
            return self._finalise(report, start)

        ctx: GeneratorContext = create_context(manifest, config)
        files: List[GeneratedFile] = self._step_generate(manifest, ctx, report)
        report.files = files
        report.total_files = len(files)
        report.total_bytes = sum(f.size_bytes for f in files)
        report.total_lines = sum(f.line_count for f in files)

        if report.generation_errors:
            return self._finalise(report, start)
        if not files:
            report.generation_errors.append("No files were generated - aborting export.")
            return self._finalise(report, start)

        if output_dir is not None:
            self._step_export(files, manifest, Path(output_dir), report)
        return self._finalise(report, start)

    def _step_validate(self, raw: Dict[str, Any], report: GenerationReport) -> bool:
        """Batch validation of the raw document; True when generation may continue."""
        with Timer("validation") as t:
            result: ValidationResult = validate_manifest(raw)

        report.validation_errors.extend(str(issue) for issue in result.errors)
        report.validation_warnings.extend(str(issue) for issue in result.warnings)

        if result.errors:
            detail: str = f"{len(result.errors)} error(s)"
        elif result.warnings:
            detail = f"{len(result.warnings)} warning(s)"
        else:
            detail = "all checks passed"

        passed: bool = result.is_valid and not (self._fail_on_warnings and result.warnings)
        report.add_step("Validate Manifest", passed, t.elapsed, detail)

        for issue in result.errors:
            logger.error("  x %s", issue)
        for issue in result.warnings:
            logger.warning("  ! %s", issue)
        if result.warnings and self._fail_on_warnings:
            report.validation_errors.append(
                f"{len(result.warnings)} warning(s) treated as errors."
            )
        return passed

    def _step_generate(
        self,
        manifest: ManifestIR,
        ctx: GeneratorContext,
        report: GenerationReport,
    ) -> List[GeneratedFile]:
        """Run every applicable step; a failing step is recorded and the rest still run."""
        by_path: Dict[str, GeneratedFile] = {}
        for step in self._profile.steps:
            if not step.applies(manifest):
                report.skipped_steps.append(step.name)
                logger.debug("Step '%s' skipped.", step.name)
                continue
            with Timer(f"generate:{step.name}") as t:
                try:
                    outcome: StepOutcome = StepOutcome(
                        name=step.name, ran=True, files=step.generator.generate(manifest, ctx)
                    )
                except SchemaForgeError as exc:
                    message: str = f"{step.name}: {type(exc).__name__}: {exc}"
                    report.generation_errors.append(message)
                    logger.error(message, exc_info=True)
                    outcome = StepOutcome(name=step.name, ran=False)
            for generated in outcome.files:
                if generated.path in by_path:
                    logger.warning("Step '%s' overwrites %s.", step.name, generated.path)
                by_path[generated.path] = generated
            report.add_step(
                f"Generate {step.name}",
                outcome.ran,
                t.elapsed,
                f"{len(outcome.files)} file(s)",
            )

        files: List[GeneratedFile] = list(by_path.values())
        logger.info(
            "Code generation complete: %d files from %d steps.",
            len(files),
            len(self._profile.steps) - len(report.skipped_steps),
        )
        return files

    def _step_export(
        self,
        files: List[GeneratedFile],
        manifest: ManifestIR,
        output_dir: Path,
        report: GenerationReport,
    ) -> None:
        exporter: ProjectExporter = ProjectExporter(
            output_dir,
            project_name=manifest.name,
            project_version=manifest.version,
            profile=self._profile.id,
            clean_before_export=self._clean_output,
        )
        with Timer("export_step") as t:
            try:
                result: ExportResult = exporter.export(files)
            except OSError as exc:
                report.export_errors.append(f"Export failed: {exc}")
                report.add_step("Export to Filesystem", False, t.elapsed, str(exc))
                return

        report.export_errors.extend(result.errors)
        report.manifest = result.manifest
        report.add_step(
            "Export to Filesystem",
            result.success,
            t.elapsed,
            f"{result.manifest.total_files} files, {result.manifest.total_bytes:,} bytes",
        )

    def _finalise(self, report: GenerationReport, start: float) -> GenerationReport:
        report.total_elapsed_seconds = time.perf_counter() - start
        report.success = not report.has_errors
        return report


def generate_project(
    manifest: Union[ManifestIR, Path, str],
    output_dir: Optional[Path] = None,
    **options: Any,
) -> GenerationReport:
    """One-call convenience wrapper around :class:`CodeGenerator`."""
    overrides: Optional[Dict[str, Any]] = options.pop("config_overrides", None)
    generator: CodeGenerator = CodeGenerator(**options)
    if isinstance(manifest, ManifestIR):
        return generator.generate(manifest, output_dir, config_overrides=overrides)
    return generator.generate_from_file(Path(manifest), output_dir, config_overrides=overrides)


__all__: List[str] = [
    "GenerationStepMetric",
    "GenerationReport",
    "CodeGenerator",
    "generate_project",
]

logger.debug("schemaforge.generator loaded - %d public symbols.", len(__all__))
