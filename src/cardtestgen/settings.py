from __future__ import annotations

from dataclasses import dataclass, field, replace
import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping

from .errors import ConfigurationError

CONFIG_FILE_NAME = ".cardtestgen.json"
LOGGER_NAME = "cardtestgen"
LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"

DEFAULT_IMPORT_PATHS: dict[str, str] = {
    "studioPage": "../../../studio.page.js",
    "editorPage": "../../../editor.page.js",
    "ostPage": "../../../ost.page.js",
    "webUtil": "../../../../libs/webutil.js",
}


@dataclass(frozen=True, slots=True)
class Settings:
    project_root: Path
    projects: dict[str, Path] = field(default_factory=dict)
    default_project: str | None = None
    output_path: str = "nala"
    import_paths: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_IMPORT_PATHS))
    variants: dict[str, str] = field(default_factory=dict)
    base_url_override: str | None = None
    default_branch: str = "main"
    max_fix_attempts: int = 3
    test_timeout_ms: int = 30000
    browser: str = "chromium"
    headless: bool = True
    config_file: Path | None = None

    def resolve_project_root(self, project: str | None = None) -> Path:
        name = (project or "").strip()
        if name:
            if name not in self.projects:
                raise ConfigurationError(f"Unknown project: {name}")
            return self.projects[name]
        if self.default_project and self.default_project in self.projects:
            return self.projects[self.default_project]
        return self.project_root

    def output_root(self, project: str | None = None) -> Path:
        return self.resolve_project_root(project) / self.output_path


def load_settings(
    environ: Mapping[str, str] | None = None,
    cwd: Path | None = None,
    home: Path | None = None,
) -> Settings:
    env = os.environ if environ is None else environ
    working_dir = cwd or Path.cwd()
    settings = Settings(project_root=working_dir)

    config_file = find_config_file(working_dir, home or Path.home())
    if config_file is not None:
        settings = _apply_file_values(settings, _read_config_file(config_file), config_file)
    return _apply_environment(settings, env)


def find_config_file(cwd: Path, home: Path) -> Path | None:
    for directory in (cwd, home):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Could not read config file {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Config file {path} must contain a JSON object.")
    return payload


def _apply_file_values(settings: Settings, payload: Mapping[str, Any], path: Path) -> Settings:
    updates: dict[str, Any] = {"config_file": path}
    base_dir = path.parent

    if payload.get("targetProjectPath"):
        updates["project_root"] = _resolve_path(str(payload["targetProjectPath"]), base_dir)
    projects = payload.get("projects")
    if isinstance(projects, dict):
        updates["projects"] = {str(name): _resolve_path(str(root), base_dir) for name, root in projects.items()}
    if payload.get("defaultProject"):
        updates["default_project"] = str(payload["defaultProject"])
    if payload.get("testOutputPath"):
        updates["output_path"] = str(payload["testOutputPath"])
    import_paths = payload.get("importPaths")
    if isinstance(import_paths, dict):
        merged = dict(settings.import_paths)
        merged.update({str(key): str(value) for key, value in import_paths.items()})
        updates["import_paths"] = merged
    variants = payload.get("variants")
    if isinstance(variants, dict):
        updates["variants"] = _parse_variants(variants)
    if payload.get("baseUrl"):
        updates["base_url_override"] = str(payload["baseUrl"])
    if payload.get("branch"):
        updates["default_branch"] = str(payload["branch"])
    if "maxFixAttempts" in payload:
        updates["max_fix_attempts"] = _positive_int(payload["maxFixAttempts"], "maxFixAttempts")
    if "timeout" in payload:
        updates["test_timeout_ms"] = _positive_int(payload["timeout"], "timeout")
    if payload.get("browser"):
        updates["browser"] = str(payload["browser"])
    if "headless" in payload:
        updates["headless"] = bool(payload["headless"])
    return replace(settings, **updates)


def _apply_environment(settings: Settings, env: Mapping[str, str]) -> Settings:
    updates: dict[str, Any] = {}
    project_root = env.get("CARDTESTGEN_PROJECT_ROOT", "").strip()
    if project_root:
        updates["project_root"] = Path(project_root).expanduser()
    projects_raw = env.get("CARDTESTGEN_PROJECTS", "").strip()
    if projects_raw:
        merged = dict(settings.projects)
        merged.update(_parse_projects(projects_raw))
        updates["projects"] = merged
    default_project = env.get("CARDTESTGEN_DEFAULT_PROJECT", "").strip()
    if default_project:
        updates["default_project"] = default_project
    output_path = env.get("CARDTESTGEN_OUTPUT_PATH", "").strip()
    if output_path:
        updates["output_path"] = output_path
    base_url = env.get("CARDTESTGEN_BASE_URL", "").strip()
    if base_url:
        updates["base_url_override"] = base_url
    attempts = env.get("CARDTESTGEN_MAX_FIX_ATTEMPTS", "").strip()
    if attempts:
        updates["max_fix_attempts"] = _positive_int(attempts, "CARDTESTGEN_MAX_FIX_ATTEMPTS")
    timeout = env.get("CARDTESTGEN_TEST_TIMEOUT_MS", "").strip()
    if timeout:
        updates["test_timeout_ms"] = _positive_int(timeout, "CARDTESTGEN_TEST_TIMEOUT_MS")
    if not updates:
        return settings
    return replace(settings, **updates)


def _parse_projects(raw: str) -> dict[str, Path]:
    projects: dict[str, Path] = {}
    for chunk in raw.split(os.pathsep):
        item = chunk.strip()
        if not item:
            continue
        name, separator, root = item.partition("=")
        if not separator or not name.strip() or not root.strip():
            raise ConfigurationError(f"Invalid project entry '{item}'. Expected name=path.")
        projects[name.strip()] = Path(root.strip()).expanduser()
    return projects


def _parse_variants(raw: Mapping[str, Any]) -> dict[str, str]:
    variants: dict[str, str] = {}
    for name, value in raw.items():
        if isinstance(value, Mapping):
            surface = str(value.get("surface") or "").strip()
        else:
            surface = str(value or "").strip()
        if surface:
            variants[str(name)] = surface
    return variants


def _positive_int(value: Any, label: str) -> int:
    try:
        number = int(str(value).strip())
    except ValueError as exc:
        raise ConfigurationError(f"{label} must be a positive integer.") from exc
    if number <= 0:
        raise ConfigurationError(f"{label} must be a positive integer.")
    return number


def _resolve_path(raw: str, base_dir: Path) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path


def configure_logging(level: int = logging.INFO, log_dir: Path | None = None) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    logger.setLevel(level)
    logger.propagate = False
    try:
        directory = log_dir or (Path.home() / ".cardtestgen")
        directory.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(directory / "cardtestgen.log", encoding="utf-8")
    except OSError:
        # Fallback to stderr logging if file logger cannot be initialized.
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return logger
