"""
Helper functions available inside job templates.

Job templates are Jinja2 documents. On top of Jinja2's own filters, keel
registers a small standard library of string, collection, encoding and
serialization helpers. Every helper is available both as a filter and as a
global function:

    image: {{ Repo | kebabcase }}:{{ Revision | trimPrefix("refs/heads/") }}
    env: {{ dict("OWNER", Owner, "REPO", Repo) | toJson }}
    labels:{{ labels | toYaml | nindent(2) }}
"""

import base64
import hashlib
import json
import re
import shlex
from typing import Any, Callable, Iterable

import yaml


# ---------------------------------------------------------------------------
# Strings
# ---------------------------------------------------------------------------

def trim(value: Any) -> str:
    return str(value).strip()


def trim_prefix(value: Any, prefix: str) -> str:
    text = str(value)
    return text[len(prefix):] if prefix and text.startswith(prefix) else text


def trim_suffix(value: Any, suffix: str) -> str:
    text = str(value)
    return text[:-len(suffix)] if suffix and text.endswith(suffix) else text


def has_prefix(value: Any, prefix: str) -> bool:
    return str(value).startswith(prefix)


def has_suffix(value: Any, suffix: str) -> bool:
    return str(value).endswith(suffix)


def quote(value: Any) -> str:
    """Double-quote a value, escaping as JSON does."""
    return json.dumps(str(value))


def squote(value: Any) -> str:
    """Single-quote a value for shell use."""
    return shlex.quote(str(value))


def trunc(value: Any, length: int) -> str:
    """Truncate to `length` characters; a negative length keeps the tail."""
    text = str(value)
    if length < 0:
        return text[length:]
    return text[:length]


def replace(value: Any, old: str, new: str) -> str:
    return str(value).replace(old, new)


_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|[^A-Za-z0-9]+")


def _words(value: Any) -> list[str]:
    return [w.lower() for w in _WORD_BOUNDARY.split(str(value)) if w]


def snakecase(value: Any) -> str:
    return "_".join(_words(value))


def kebabcase(value: Any) -> str:
    return "-".join(_words(value))


def nindent(value: Any, width: int) -> str:
    """Indent every line by `width` spaces, preceded by a newline."""
    pad = " " * width
    return "\n" + "\n".join(pad + line if line else line for line in str(value).splitlines())


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def b64enc(value: Any) -> str:
    return base64.b64encode(str(value).encode("utf-8")).decode("ascii")


def b64dec(value: Any) -> str:
    return base64.b64decode(str(value)).decode("utf-8")


def sha256sum(value: Any) -> str:
    return hashlib.sha256(str(value).encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------

def make_list(*items: Any) -> list[Any]:
    return list(items)


def make_dict(*pairs: Any, **kwargs: Any) -> dict[Any, Any]:
    """Build a dict from alternating keys and values, plus any keyword arguments."""
    if len(pairs) % 2:
        raise ValueError("dict requires an even number of arguments")
    result = {pairs[i]: pairs[i + 1] for i in range(0, len(pairs), 2)}
    result.update(kwargs)
    return result


def split(value: Any, sep: str) -> list[str]:
    return str(value).split(sep)


def join(items: Iterable[Any], sep: str) -> str:
    return sep.join(str(item) for item in items)


def first(items: Any) -> Any:
    items = list(items)
    return items[0] if items else None


def last(items: Any) -> Any:
    items = list(items)
    return items[-1] if items else None


def uniq(items: Iterable[Any]) -> list[Any]:
    result = []
    for item in items:
        if item not in result:
            result.append(item)
    return result


def keys(mapping: dict[Any, Any]) -> list[Any]:
    return sorted(mapping.keys())


def has_key(mapping: dict[Any, Any], key: Any) -> bool:
    return key in mapping


def merge(*mappings: dict[Any, Any]) -> dict[Any, Any]:
    """Merge mappings; earlier mappings take precedence."""
    result: dict[Any, Any] = {}
    for mapping in reversed(mappings):
        result.update(mapping)
    return result


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def to_yaml(value: Any) -> str:
    return yaml.safe_dump(value, default_flow_style=False, sort_keys=False).rstrip("\n")


def to_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True)


TEMPLATE_FUNCS: dict[str, Callable[..., Any]] = {
    "trim": trim,
    "trimPrefix": trim_prefix,
    "trimSuffix": trim_suffix,
    "hasPrefix": has_prefix,
    "hasSuffix": has_suffix,
    "quote": quote,
    "squote": squote,
    "trunc": trunc,
    "replace": replace,
    "snakecase": snakecase,
    "kebabcase": kebabcase,
    "nindent": nindent,
    "b64enc": b64enc,
    "b64dec": b64dec,
    "sha256sum": sha256sum,
    "list": make_list,
    "dict": make_dict,
    "split": split,
    "join": join,
    "first": first,
    "last": last,
    "uniq": uniq,
    "keys": keys,
    "hasKey": has_key,
    "merge": merge,
    "toYaml": to_yaml,
    "toJson": to_json,
}


def register(env) -> None:
    """
    Install the helper library into a Jinja2 Environment.

    Jinja2's built-in filters of the same name (trim, replace, join, first,
    last, list) are kept as filters; the helpers remain callable as globals.
    """
    for name, fn in TEMPLATE_FUNCS.items():
        env.filters.setdefault(name, fn)
    env.globals.update(TEMPLATE_FUNCS)
