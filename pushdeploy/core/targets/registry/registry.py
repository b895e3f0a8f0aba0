"""Target Registry - Discovery and fresh loading of deployment targets

Responsibilities:
- Enumerate target directories under the targets root
- Probe whether a target name has a deployment definition
- Load deploy.py definitions freshly on every resolve so a pull that
  changed the definition takes effect without a process restart
"""

import importlib.util
import itertools
import logging
import re
import sys
from pathlib import Path
from typing import Optional, Union

from pushdeploy.core.exceptions import TargetDefinitionInvalid, TargetNotFound
from pushdeploy.core.logs.setup.setup import get_target_logger
from pushdeploy.core.targets.target.target import GitWorkingCopy, ModuleTarget

logger = logging.getLogger(__name__)

_MODULE_NAME_UNSAFE = re.compile(r"\W")


class TargetRegistry:
    """Resolves target names and paths to DeploymentTarget instances"""

    def __init__(
        self,
        targets_root: Union[str, Path],
        definition_filename: str = "deploy.py",
        git_timeout: Optional[float] = None,
    ):
        self.targets_root = Path(targets_root)
        self.definition_filename = definition_filename
        self.git_timeout = git_timeout
        self._load_counter = itertools.count()

    def path_for(self, name: str) -> Path:
        """Working copy path for a target name"""
        return self.targets_root / name

    def definition_path(self, path: Union[str, Path]) -> Path:
        return Path(path) / self.definition_filename

    def exists(self, name_or_path: Union[str, Path]) -> bool:
        """Check whether a target has a deployment definition on disk"""
        path = Path(name_or_path)
        if not path.is_absolute():
            path = self.path_for(str(name_or_path))
        return self.definition_path(path).is_file()

    def discover(self) -> list[Path]:
        """List target directories that carry a definition, sorted by name"""
        if not self.targets_root.is_dir():
            logger.warning(f"Targets root does not exist: {self.targets_root}")
            return []

        targets = []
        for entry in sorted(self.targets_root.iterdir()):
            if entry.name.startswith(".") or not entry.is_dir():
                continue
            if self.definition_path(entry).is_file():
                targets.append(entry)

        logger.debug(f"Discovered {len(targets)} deployment targets in {self.targets_root}")
        return targets

    def resolve(self, path: Union[str, Path]) -> ModuleTarget:
        """Load the target definition at path freshly.

        Raises:
            TargetNotFound: no definition module at path
            TargetDefinitionInvalid: the module fails to import or lacks run()
        """
        path = Path(path)
        definition = self.definition_path(path)
        if not definition.is_file():
            raise TargetNotFound(str(path))

        module = self._load_module(definition, path.name)
        if not callable(getattr(module, "run", None)):
            raise TargetDefinitionInvalid(str(path), "definition does not define run()")

        target = ModuleTarget(path.name, path, module, git_timeout=self.git_timeout)
        try:
            target.init(get_target_logger(path.name))
        except Exception as e:
            raise TargetDefinitionInvalid(str(path), f"init() failed: {e}") from e

        return target

    def working_copy(self, path: Union[str, Path]) -> GitWorkingCopy:
        """Git-only view of a target, for pulling when the definition is broken"""
        path = Path(path)
        return GitWorkingCopy(path.name, path, git_timeout=self.git_timeout)

    def _load_module(self, definition: Path, name: str):
        # Unique module names keep every load independent of earlier ones
        module_name = f"pushdeploy_target_{_MODULE_NAME_UNSAFE.sub('_', name)}_{next(self._load_counter)}"
        spec = importlib.util.spec_from_file_location(module_name, definition)
        if spec is None or spec.loader is None:
            raise TargetDefinitionInvalid(str(definition.parent), "cannot create module spec")

        module = importlib.util.module_from_spec(spec)
        # Visible in sys.modules only while executing
        sys.modules[module_name] = module
        try:
            # Compiled from source: a .pyc keyed on whole-second mtime can be stale
            code = compile(definition.read_text(), str(definition), "exec")
            exec(code, module.__dict__)
        except Exception as e:
            raise TargetDefinitionInvalid(str(definition.parent), f"{type(e).__name__}: {e}") from e
        finally:
            sys.modules.pop(module_name, None)

        logger.debug(f"Loaded deployment definition {definition}")
        return module
