from __future__ import annotations

import logging
import shutil

from .errors import MissingDependency
from .layout import PrefixLayout
from .types import FormulaDescriptor

logger = logging.getLogger(__name__)


def is_dependency_present(layout: PrefixLayout, name: str) -> bool:
    if layout.opt_link(name).exists():
        return True
    return shutil.which(name) is not None


def check_runtime_dependencies(descriptor: FormulaDescriptor, layout: PrefixLayout) -> None:
    missing = tuple(dep for dep in descriptor.runtime_dependencies if not is_dependency_present(layout, dep))
    if missing:
        raise MissingDependency(missing)
    logger.debug("runtime dependencies satisfied deps=%s", list(descriptor.runtime_dependencies))
