"""Defines the named transforms that reshape HAL+JSON upstream responses.

Transforms are only applied where a route's configuration asks for them;
by default responses are relayed unchanged.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from sportproxy.errors import UpstreamResponseError

Transform = Callable[[Any, str], Any]

SUBSCRIPTIONS_REL = "fx:subscriptions"
ATTRIBUTES_REL = "fx:attributes"


def _require_resource(body: Any) -> Mapping[str, Any]:
    if not isinstance(body, Mapping):
        raise UpstreamResponseError(f"Expected a HAL resource, got {type(body).__name__}")
    return body


def _embedded(body: Any, rel: str) -> list[Any]:
    embedded = _require_resource(body).get("_embedded") or {}
    if not isinstance(embedded, Mapping):
        raise UpstreamResponseError("Malformed _embedded section")
    items = embedded.get(rel, [])
    if not isinstance(items, list):
        raise UpstreamResponseError(f"Embedded relation {rel!r} is not a list")
    return items


def identity(body: Any, arg: str) -> Any:
    return body


def embedded(body: Any, arg: str) -> list[Any]:
    """Returns the resources embedded under the relation ``arg``."""
    return _embedded(body, arg)


def active_subscriptions(body: Any, arg: str) -> dict[str, Any]:
    """Keeps only the active subscriptions of a subscription collection."""
    active = [sub for sub in _embedded(body, SUBSCRIPTIONS_REL) if isinstance(sub, Mapping) and sub.get("is_active")]
    shaped = dict(body)
    shaped["_embedded"] = {**body["_embedded"], SUBSCRIPTIONS_REL: active} if body.get("_embedded") else {}
    if "returned_items" in shaped:
        shaped["returned_items"] = len(active)
    return shaped


def attribute(body: Any, arg: str) -> dict[str, Any]:
    """Picks the value of the attribute named ``arg``."""
    for attr in _embedded(body, ATTRIBUTES_REL):
        if isinstance(attr, Mapping) and attr.get("name") == arg:
            return {"name": arg, "value": attr.get("value")}
    return {"name": arg, "value": None}


def strip_links(body: Any, arg: str) -> Any:
    if isinstance(body, Mapping):
        return {key: strip_links(value, arg) for key, value in body.items() if key != "_links"}
    if isinstance(body, list):
        return [strip_links(item, arg) for item in body]
    return body


TRANSFORMS: dict[str, Transform] = {
    "identity": identity,
    "embedded": embedded,
    "active_subscriptions": active_subscriptions,
    "attribute": attribute,
    "strip_links": strip_links,
}


@dataclass(frozen=True)
class TransformRule:
    pattern: re.Pattern[str]
    name: str
    arg: str = ""

    @classmethod
    def create(cls, pattern: str, name: str, arg: str = "") -> "TransformRule":
        if name not in TRANSFORMS:
            raise ValueError(f"Unknown transform {name!r}; choose from {sorted(TRANSFORMS)}")
        return cls(re.compile(pattern), name, arg)

    def matches(self, path: str) -> bool:
        return self.pattern.fullmatch(path) is not None

    def apply(self, body: Any) -> Any:
        return TRANSFORMS[self.name](body, self.arg)
