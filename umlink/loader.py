"""
Classfile discovery.

Walks include paths, decodes every `*.class` file and keeps one ClassModel
per fully qualified name.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from .classfile import read_classfile
from .errors import MalformedClassfile
from .model import ClassModel
from .model_builder import ClassModelBuilder

logger = logging.getLogger(__name__)

CLASSFILE_SUFFIX = ".class"


def is_anonymous_classfile(path: Path) -> bool:
    """Lambda and anonymous class files end in `$<digits>` ("Keyboard$1.class")."""
    stem = path.stem
    if "$" not in stem:
        return False
    return stem.rsplit("$", 1)[1].isdigit()


class ClassfileLoader:
    """Loads ClassModels from files and directories."""

    def __init__(self, builder: Optional[ClassModelBuilder] = None):
        self.builder = builder or ClassModelBuilder()
        self.models: Dict[str, ClassModel] = {}
        self.malformed: List[Path] = []
        self.anonymous_skipped = 0
        self.duplicates_skipped = 0

    def load_path(self, path: Union[str, Path]) -> int:
        """
        Load a classfile, or every classfile below a directory.

        Returns the number of models added from this path.

        Raises:
            FileNotFoundError: `path` does not exist.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Missing include path {path}")

        if path.is_dir():
            files = sorted(p for p in path.rglob(f"*{CLASSFILE_SUFFIX}") if p.is_file())
        elif path.suffix == CLASSFILE_SUFFIX:
            files = [path]
        else:
            logger.warning("Ignoring %s: not a %s file", path, CLASSFILE_SUFFIX)
            files = []

        added = 0
        for file_path in files:
            if self.load_file(file_path) is not None:
                added += 1
        logger.debug("Loaded %d classes from %s", added, path)
        return added

    def load_file(self, path: Path) -> Optional[ClassModel]:
        """Load one classfile; malformed files are reported and skipped."""
        if is_anonymous_classfile(path):
            self.anonymous_skipped += 1
            return None

        try:
            model = self.builder.build(read_classfile(path), source=str(path))
        except MalformedClassfile as e:
            logger.warning("Skipping malformed classfile %s", e)
            self.malformed.append(path)
            return None

        if model.name in self.models:
            logger.warning("Duplicate class %s in %s ignored", model.name, path)
            self.duplicates_skipped += 1
            return None

        self.models[model.name] = model
        return model

    def get_models(self) -> List[ClassModel]:
        """Loaded models ordered by fully qualified name."""
        return [self.models[name] for name in sorted(self.models)]

    def get_statistics(self) -> Dict[str, int]:
        return {
            "loaded": len(self.models),
            "malformed": len(self.malformed),
            "anonymous_skipped": self.anonymous_skipped,
            "duplicates_skipped": self.duplicates_skipped,
        }
