"""Human readable file sizes."""

_UNITS = ("B", "KB", "MB", "GB", "TB", "PB")


def format_file_size(size: int, decimals: int = 2) -> str:
    """Format a byte count with base-2 units.

    Examples:
        >>> format_file_size(104857600)
        '100 MB'
        >>> format_file_size(1536)
        '1.5 KB'
    """
    value = float(size)
    unit = 0
    while abs(value) >= 1024 and unit < len(_UNITS) - 1:
        value /= 1024
        unit += 1
    rounded = round(value, decimals)
    text = f"{rounded:.{decimals}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return f"{text} {_UNITS[unit]}"
