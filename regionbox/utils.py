"""Shared utility functions for the annotation tool."""

from pathlib import Path


def sanitize_filename(filename: str) -> str:
    """Sanitize a filename to prevent path traversal attacks.

    Extracts just the filename component, removing any directory paths
    that could be used for path traversal (e.g., "../", "/etc/").

    Args:
        filename: The raw filename that may contain path components.

    Returns:
        The sanitized filename with only the base name component.

    Example:
        >>> sanitize_filename("../../../etc/passwd")
        'passwd'
        >>> sanitize_filename("export.json")
        'export.json'
    """
    return Path(filename).name


def validate_path_in_directory(path: Path, directory: Path) -> bool:
    """Validate that a path is contained within the expected directory.

    Dataset items reference their images by relative path; this keeps a
    crafted dataset.json from pointing outside its own folder.

    Args:
        path: The path to validate.
        directory: The directory that should contain the path.

    Returns:
        True if the path is safely within the directory, False otherwise.

    Example:
        >>> base = Path("/data/dataset")
        >>> validate_path_in_directory(base / "images/cat.jpg", base)
        True
        >>> validate_path_in_directory(base / "../etc/passwd", base)
        False
    """
    try:
        resolved_path = path.resolve()
        resolved_dir = directory.resolve()
        return resolved_path.is_relative_to(resolved_dir)
    except (ValueError, OSError):
        return False
