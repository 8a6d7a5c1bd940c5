"""Reference registry: symbolic refs, attribute refs, exports and their names.

A plugin never hands its live resources to another plugin. Instead it
declares resources under short ref codes (``CloudRef``), exports the ref
and selected attributes (``CloudAtt``) from its own deployment unit, and
dependents resolve those values by name once the unit is deployed.

Two names are derived from ``(stack, ref[, att])``:

* the output key, unique within one stack's outputs
  (``Exp1B`` for ref ``b``, ``Exp1BAtt3Arn`` for ``b`` / ``Arn``);
* the export name, unique across stacks
  (``app-prod-bucket-media:b`` and ``app-prod-bucket-media:b:Arn``).

Both encodings are injective: length prefixes keep the output key
unambiguous, and ``:`` never appears in stack names, ref codes or
attribute segments.
"""

import json
import re
from abc import ABC, abstractmethod
from types import MappingProxyType

from stackwave.errors import ExportNotFoundError, ValidationError

_REF_RE = re.compile(r"^[a-z][a-z0-9]*(-[a-z][a-z0-9]*)*$")
_ATT_SEGMENT_RE = re.compile(r"^[A-Za-z][A-Za-z0-9]*$")
_STACK_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9-]*$")


class CloudRef(str):
    """Short code identifying a resource inside one plugin's deployment unit."""

    def __new__(cls, code):
        if not isinstance(code, str) or not _REF_RE.match(code):
            raise ValidationError(f"invalid ref code {code!r} (must match {_REF_RE.pattern})")
        return super().__new__(cls, code)

    @property
    def logical_id(self) -> str:
        """CamelCase logical id used inside templates (``s-pub-a`` -> ``SPubA``)."""
        return "".join(segment[0].upper() + segment[1:] for segment in str(self).split("-"))

    def resource_name(self, plugin) -> str:
        """Physical resource name scoped to the plugin's stack."""
        return f"{plugin.stack_name}-{self}"

    def output_key(self, att=None) -> str:
        logical_id = self.logical_id
        key = f"Exp{len(logical_id)}{logical_id}"
        if att is not None:
            key += "Att" + "".join(f"{len(segment)}{segment}" for segment in CloudAtt(att).segments)
        return key

    def export_name(self, stack_name, att=None) -> str:
        if not isinstance(stack_name, str) or not _STACK_NAME_RE.match(stack_name):
            raise ValidationError(f"invalid stack name {stack_name!r}")
        parts = [stack_name, str(self)]
        if att is not None:
            parts.extend(CloudAtt(att).segments)
        return ":".join(parts)


class CloudAtt(str):
    """Attribute of a resource, e.g. ``Arn`` or ``Endpoint.Address``."""

    def __new__(cls, code):
        if not isinstance(code, str) or not all(_ATT_SEGMENT_RE.match(s) for s in code.split(".")):
            raise ValidationError(f"invalid attribute code {code!r}")
        return super().__new__(cls, code)

    @property
    def segments(self) -> list[str]:
        return str(self).split(".")


def make_stack_name(app_name, stage_name, kind, instance_name=None) -> str:
    """Deployment-unit name: ``<app>-<stage>-<kind>[-<instance>]``."""
    parts = [app_name, stage_name, kind]
    if instance_name:
        parts.append(instance_name)
    return "-".join(parts)


# ── Template intrinsics ─────────────────────────────────────────────


def cf_ref(ref):
    return {"Ref": CloudRef(ref).logical_id}


def cf_get_att(ref, att):
    return {"Fn::GetAtt": [CloudRef(ref).logical_id, str(CloudAtt(att))]}


def cf_join(delimiter, values):
    return {"Fn::Join": [delimiter, list(values)]}


def cf_sub(template):
    return {"Fn::Sub": template}


def default_tags(name):
    return [{"Key": "Name", "Value": name}]


class CloudTemplate:
    """CloudFormation template for one plugin's deployment unit."""

    def __init__(self, stack_name, description=None):
        self.stack_name = stack_name
        self.description = description
        self.resources: dict[str, dict] = {}
        self.outputs: dict[str, dict] = {}

    def add_resource(self, ref, resource_type, properties=None, depends_on=None) -> dict:
        ref = CloudRef(ref)
        if ref.logical_id in self.resources:
            raise ValidationError(f"stack '{self.stack_name}': duplicate resource ref {ref}")
        resource = {"Type": resource_type}
        if properties:
            resource["Properties"] = {k: v for k, v in properties.items() if v is not None}
        if depends_on:
            resource["DependsOn"] = [CloudRef(d).logical_id for d in depends_on]
        self.resources[ref.logical_id] = resource
        return resource

    def export_ref(self, ref):
        """Publish the ref's value under its export name."""
        ref = CloudRef(ref)
        self.outputs[ref.output_key()] = {
            "Value": cf_ref(ref),
            "Export": {"Name": ref.export_name(self.stack_name)},
        }

    def export_att(self, ref, att):
        """Publish one attribute of the ref under its export name."""
        ref = CloudRef(ref)
        att = CloudAtt(att)
        self.outputs[ref.output_key(att)] = {
            "Value": cf_get_att(ref, att),
            "Export": {"Name": ref.export_name(self.stack_name, att)},
        }

    def to_dict(self) -> dict:
        template = {"AWSTemplateFormatVersion": "2010-09-09"}
        if self.description:
            template["Description"] = self.description
        template["Resources"] = self.resources
        if self.outputs:
            template["Outputs"] = self.outputs
        return template

    def to_json(self) -> str:
        # Sorted keys keep the body stable so unchanged templates are no-op updates.
        return json.dumps(self.to_dict(), indent=2, sort_keys=True)


# ── Exports ─────────────────────────────────────────────────────────


class Exports(ABC):
    """Read side of the registry: ``(ref[, att]) -> str`` for one owner."""

    def __init__(self, owner: str):
        self.owner = owner

    @abstractmethod
    def _lookup(self, key: str) -> str | None:
        ...

    def get_ref(self, ref) -> str:
        ref = CloudRef(ref)
        value = self._lookup(ref.output_key())
        if value is None:
            raise ExportNotFoundError(self.owner, ref)
        return value

    def get_att(self, ref, att) -> str:
        ref = CloudRef(ref)
        att = CloudAtt(att)
        value = self._lookup(ref.output_key(att))
        if value is None:
            raise ExportNotFoundError(self.owner, ref, att)
        return value


class StackExports(Exports):
    """Exports backed by a deployed stack's outputs. Read-only."""

    def __init__(self, stack, owner=None):
        super().__init__(owner or stack.name)
        self.stack_name = stack.name
        self._outputs = MappingProxyType(dict(stack.outputs))

    def _lookup(self, key):
        return self._outputs.get(key)


class LocalExports(Exports):
    """Exports published by a plugin while building the local service spec."""

    def __init__(self, owner: str):
        super().__init__(owner)
        self._values: dict[str, str] = {}

    def publish(self, ref, value, att=None):
        self._values[CloudRef(ref).output_key(att)] = str(value)

    def _lookup(self, key):
        return self._values.get(key)
