from pathlib import Path
from urllib.parse import quote, unquote, urlparse


def path_to_uri(path: str | Path) -> str:
    """Canonical file URI for a buffer path.

    Buffer paths come straight from the editor and are already absolute, so
    symlinks are kept rather than resolved: the server must see the same file
    the editor has open.
    """
    path = Path(path)
    if not path.is_absolute():
        path = path.absolute()
    return "file://" + quote(path.as_posix(), safe="/:")


def uri_to_path(uri: str) -> Path:
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        raise ValueError(f"Not a file URI: {uri}")
    return Path(unquote(parsed.path))
