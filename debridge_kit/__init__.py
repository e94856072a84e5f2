"""Top-level package for deBridge order tooling."""

from importlib import metadata


def __getattr__(name: str) -> str:
    """Expose the package version via ``debridge_kit.__version__``."""
    if name == "__version__":
        try:
            return metadata.version("debridge-kit")
        except metadata.PackageNotFoundError:
            return "0.0.0"
    raise AttributeError(name)


__all__ = ["__version__"]
