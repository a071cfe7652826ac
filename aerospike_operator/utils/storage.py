import re
from typing import Dict, Iterable, Optional, Tuple

# aerospike interprets K, M, G and T as powers of 1024
_SIZE_SUFFIXES = {
    "": 1,
    "k": 1000,
    "K": 1024,
    "M": 1024**2,
    "G": 1024**3,
    "T": 1024**4,
    "Ki": 1024,
    "Mi": 1024**2,
    "Gi": 1024**3,
    "Ti": 1024**4,
}

_SIZE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*([A-Za-z]*)$")

#: Memory requested on top of the namespaces' in-memory size
MEMORY_HEADROOM_BYTES = 1024**3

BACKUP_EXTENSION = "asb.gz"
METADATA_EXTENSION = "json"


def parse_size_to_bytes(size_str: str) -> int:
    """Parse a size string such as ``4G`` or ``512Mi`` to bytes.

    Raises:
        ValueError: If the size string is invalid
    """
    if not size_str:
        raise ValueError("Size string cannot be empty")

    match = _SIZE_PATTERN.match(size_str.strip())
    if not match:
        raise ValueError(f"Invalid size string: {size_str}")

    value = float(match.group(1))
    suffix = match.group(2)

    if suffix not in _SIZE_SUFFIXES:
        raise ValueError(f"Unknown size suffix: {suffix}")

    return int(value * _SIZE_SUFFIXES[suffix])


def memory_request_bytes(memory_sizes: Iterable[Optional[str]]) -> Optional[int]:
    """Sum of the namespaces' memory sizes plus headroom.

    Returns ``None`` when no namespace declares a memory size.
    """
    sizes = [parse_size_to_bytes(size) for size in memory_sizes if size]
    if not sizes:
        return None
    return sum(sizes) + MEMORY_HEADROOM_BYTES


def storage_object_names(name: str) -> Tuple[str, str]:
    """Names of the metadata and data objects of a namespace backup."""
    return f"{name}.{METADATA_EXTENSION}", f"{name}.{BACKUP_EXTENSION}"


def backup_metadata(namespace_name: str) -> Dict[str, str]:
    return {"namespace": namespace_name}
