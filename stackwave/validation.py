"""Validation helpers shared by config dataclasses."""

import os
import re

from stackwave.errors import ValidationError

RESOURCE_NAME_RE = re.compile(r"^[a-z][a-z0-9-]{0,32}$")


def require(condition, message):
    """Raise ValidationError with *message* unless *condition* holds."""
    if not condition:
        raise ValidationError(message)


def require_resource_name(value, field_name):
    """Resource names are lowercase, start with a letter, and are at most 33 chars long."""
    if not isinstance(value, str) or not RESOURCE_NAME_RE.match(value):
        raise ValidationError(f"{field_name}: invalid resource name {value!r} (must match {RESOURCE_NAME_RE.pattern})")


def require_dir(path, field_name):
    require(bool(path), f"{field_name}: required")
    require(os.path.isdir(path), f"{field_name}: directory not found: {path}")


def require_parent_dir(path, field_name):
    """The directory itself may be missing, but its parent must exist."""
    require(bool(path), f"{field_name}: required")
    parent = os.path.dirname(os.path.abspath(path))
    require(os.path.isdir(parent), f"{field_name}: parent directory not found: {parent}")


def require_port(value, field_name):
    require(isinstance(value, int) and 0 < value < 65536, f"{field_name}: invalid port {value!r}")
