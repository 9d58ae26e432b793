"""
Runtime identifiers.

Lambda runtime names (``nodejs:12.x``, ``nodejs14.x``, ``python3.9``...) are
reduced to the interpreter family that runs them.
"""

from typing import Optional

NODEJS = "nodejs"
PYTHON = "python"

FAMILIES = (NODEJS, PYTHON)


def runtime_family(runtime: Optional[str]) -> Optional[str]:
    """Return the family a runtime identifier belongs to, or None if unknown."""
    if not runtime:
        return None
    for family in FAMILIES:
        if runtime.startswith(family):
            return family
    return None


def base_image_tag(runtime: str) -> str:
    """Tag of the Lambda base image for a runtime: ``nodejs:12.x`` -> ``nodejs:12``."""
    tag = runtime
    if tag.endswith(".x"):
        tag = tag[: -len(".x")]
    if ":" not in tag:
        # nodejs14 -> nodejs:14
        family = runtime_family(tag)
        if family and tag != family:
            tag = f"{family}:{tag[len(family):]}"
    return tag
