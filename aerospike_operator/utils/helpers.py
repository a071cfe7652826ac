import jsonpickle
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def now() -> str:
    """Current time as an RFC3339 string with second precision."""
    return utc_now().replace(microsecond=0).isoformat().replace("+00:00", "Z")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_datestr_to_datetime(datestr):
    if isinstance(datestr, str) and len(datestr) > 0:
        if datestr[-1] == "Z":
            return datetime.fromisoformat(datestr.replace("Z", "+00:00"))
        else:
            return datetime.fromisoformat(datestr)
    else:
        raise ValueError("'{}' is not valid iso date format".format(datestr))


def sort_dict_keys(d):
    """Recursively sort dictionary keys and handle nested structures."""
    if isinstance(d, dict):
        return {key: sort_dict_keys(value) for key, value in sorted(d.items())}
    elif isinstance(d, list):
        return [sort_dict_keys(item) for item in d]
    else:
        return d


def canonicalize_dict(data):
    """
    Returns a canonical JSON representation of a dictionary.

    Keys are sorted recursively so that the representation remains the same
    even when key order varies.
    """
    return jsonpickle.dumps(sort_dict_keys(data), unpicklable=False)


def new_condition(type: str, status: bool, reason: str, message: str) -> Dict[str, Any]:
    return {
        "type": type,
        "status": "True" if status else "False",
        "reason": reason,
        "message": message,
        "lastTransitionTime": now(),
    }


def append_condition(conds: Optional[List[Dict]], newc: Dict) -> List[Dict]:
    """Append-only condition log. Returns a new list."""
    return [*(conds or []), newc]


def has_true_condition(conds: Optional[List[Dict]], type: str) -> bool:
    return any(
        c.get("type") == type and c.get("status") == "True" for c in (conds or [])
    )
