from __future__ import annotations

import logging
import os
from pathlib import Path
import tempfile
import time
from typing import Callable, Mapping, Sequence

from .errors import GenerationError
from .models import ArtifactPaths, CardConfiguration, GeneratedArtifactSet
from .naming import page_object_file_name, spec_file_name, test_file_name
from .page_object_generator import generate_page_object
from .settings import Settings
from .spec_generator import generate_spec
from .test_generator import generate_test
from .validation import validate_card_type, validate_configuration, validate_file_name, validate_test_type
from .variant_registry import VariantRegistry


def generate_artifacts(
    config: CardConfiguration,
    test_types: Sequence[str] | None = None,
    import_paths: Mapping[str, str] | None = None,
    *,
    include_fallbacks: bool = False,
) -> GeneratedArtifactSet:
    """Render the page object plus one spec and one test per requested test type."""
    validate_configuration(config)
    requested = list(test_types) if test_types else list(config.test_types)
    if not requested:
        raise GenerationError("No test types requested.")
    artifact_set = GeneratedArtifactSet(
        configuration=config,
        page_object=generate_page_object(config, include_fallbacks=include_fallbacks),
    )
    for test_type in requested:
        artifact_set.spec[test_type] = generate_spec(config, test_type)
        artifact_set.test[test_type] = generate_test(config, test_type, import_paths)
    return artifact_set


class ArtifactStore:
    """On-disk artifact tree: ``{root}/{output}/studio/{surface}/{card_type}``."""

    def __init__(
        self,
        settings: Settings,
        registry: VariantRegistry | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry or VariantRegistry(settings)
        self.logger = logging.getLogger("cardtestgen.artifacts")
        self._clock = clock or time.time

    def base_dir(self, card_type: str, project: str | None = None) -> Path:
        card_type = validate_card_type(card_type)
        surface = self.registry.surface_for(card_type)
        return self.settings.output_root(project) / "studio" / surface / card_type

    def paths(self, card_type: str, test_type: str, project: str | None = None) -> ArtifactPaths:
        test_type = validate_test_type(test_type)
        base_dir = self.base_dir(card_type, project)
        return ArtifactPaths(
            base_dir=base_dir,
            page_object=base_dir / validate_file_name(page_object_file_name(card_type)),
            spec=base_dir / "specs" / validate_file_name(spec_file_name(card_type, test_type)),
            test=base_dir / "tests" / validate_file_name(test_file_name(card_type, test_type)),
        )

    def save(self, artifact_set: GeneratedArtifactSet, project: str | None = None) -> list[Path]:
        config = artifact_set.configuration
        self.registry.ensure(config.card_type)
        written: list[Path] = []
        page_object_written = False
        for test_type in artifact_set.test_types():
            paths = self.paths(config.card_type, test_type, project)
            if not page_object_written:
                written.append(self.write(paths.page_object, artifact_set.page_object))
                page_object_written = True
            written.append(self.write(paths.spec, artifact_set.spec[test_type]))
            written.append(self.write(paths.test, artifact_set.test[test_type]))
        self.logger.info("Saved %s artifact file(s) for %s", len(written), config.card_type)
        return written

    def read(self, path: Path) -> str | None:
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, target: Path, content: str) -> Path:
        target.parent.mkdir(parents=True, exist_ok=True)
        temp_path: Path | None = None
        try:
            fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent))
            temp_path = Path(temp_name)
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as temp_file:
                temp_file.write(content)
                temp_file.flush()
                os.fsync(temp_file.fileno())
            temp_path.replace(target)
        except OSError:
            if temp_path and temp_path.exists():
                temp_path.unlink(missing_ok=True)
            raise
        return target

    def backup(self, target: Path) -> Path:
        stamp = int(self._clock() * 1000)
        backup_path = Path(f"{target}.backup.{stamp}")
        counter = 1
        while backup_path.exists():
            backup_path = Path(f"{target}.backup.{stamp}.{counter}")
            counter += 1
        backup_path.write_text(target.read_text(encoding="utf-8"), encoding="utf-8")
        self.logger.info("Backup created at %s", backup_path)
        return backup_path
