"""
Module- and file-loading to trigger the reconcilers to be registered.

The reconcilers are declared with decorators, so the files/modules with them
should be loaded first, thus executing the decorators. Two loading modes
are supported, both equivalent to Python CLI:

* Plain files (``kruntime run file.py``).
* Importable modules (``kruntime run -m pkg.mod``).
"""
import importlib
import importlib.util
import os.path
import sys
from collections.abc import Iterable


def preload(
        paths: Iterable[str],
        modules: Iterable[str],
) -> None:
    """
    Ensure the reconcilers are registered by loading/importing the files/modules.
    """

    for idx, path in enumerate(paths):
        sys.path.insert(0, os.path.abspath(os.path.dirname(path)))
        name = f'__kruntime_script_{idx}__{path}'  # same pseudo-name as '__main__'
        spec = importlib.util.spec_from_file_location(name, path)
        module = importlib.util.module_from_spec(spec) if spec is not None else None
        loader = spec.loader if spec is not None else None
        if module is not None and loader is not None:
            sys.modules[name] = module
            loader.exec_module(module)
        else:
            raise ImportError(f"Failed loading {path}: no module or loader.")

    for name in modules:
        importlib.import_module(name)
