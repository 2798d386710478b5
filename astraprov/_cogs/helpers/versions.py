"""
Detecting the package's own version.

The version is determined only once at startup when the code is loaded,
and is used in the User-Agent header of all API requests.
"""
version: str | None = None

try:
    import importlib.metadata
except ImportError:
    pass
else:
    try:
        name, *_ = __name__.split('.')  # usually "astraprov", unless renamed/forked.
        version = importlib.metadata.version(name)
    except Exception:
        pass  # not installed, or installed from a source tree without metadata.
