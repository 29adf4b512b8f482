"""Matching AWS resource tags against tag filters."""

from collections.abc import Iterable, Mapping
from typing import Any

from costsaver.core.trick import TagFilter


def tags_to_dict(tags: Iterable[Mapping[str, Any]] | None) -> dict[str, str]:
    """Convert an AWS tag list into a dict.

    Handles both capitalisations used across AWS APIs ({"Key", "Value"} and
    ECS's {"key", "value"}).

    Args:
        tags: Tag list as returned by a describe call

    Returns:
        Mapping of tag key to value
    """
    result: dict[str, str] = {}
    for tag in tags or []:
        key = tag.get("Key", tag.get("key"))
        if key is None:
            continue
        result[key] = tag.get("Value", tag.get("value", ""))
    return result


def matches_tags(tags: Mapping[str, str], filters: Iterable[TagFilter]) -> bool:
    """Check whether resource tags satisfy every filter.

    Args:
        tags: Resource tags
        filters: Filters that must all match

    Returns:
        True if, for every filter, the key is present with one of its values
    """
    return all(f.key in tags and tags[f.key] in f.values for f in filters)


def to_ec2_filters(filters: Iterable[TagFilter]) -> list[dict[str, Any]]:
    """Convert tag filters into EC2 describe filters."""
    return [{"Name": f"tag:{f.key}", "Values": list(f.values)} for f in filters]
