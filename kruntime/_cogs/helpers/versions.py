"""
Detecting the framework's own version.

The version is not stored in the codebase: it comes from the git tags
at packaging time, and is read from the installed distribution's metadata.
"""
import importlib.metadata

version: str | None = None

try:
    name, *_ = __name__.split('.')  # usually "kruntime", unless renamed/forked.
    version = importlib.metadata.version(name)
except importlib.metadata.PackageNotFoundError:
    pass  # running from a source tree without installation.
