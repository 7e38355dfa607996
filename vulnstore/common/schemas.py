"""
Shared location for the JSON serialization schemas. They should only reference each-other in this module so it can
import cleanly into any module.
"""
import json

import marshmallow
from marshmallow import Schema, fields

from vulnstore.utils import datetime_to_rfc3339, rfc3339str_to_datetime

# For other modules to import from this one instead of having to know/use marshmallow directly
SchemaValidationError = marshmallow.ValidationError


class RFC3339DateTime(fields.DateTime):
    """
    UTC datetime field rendered as RFC3339 (e.g. 2024-01-02T03:04:05Z). Input also accepts fractional seconds and
    explicit offsets.
    """

    def _serialize(self, value, attr, obj, **kwargs):
        if value is None:
            return None
        return datetime_to_rfc3339(value)

    def _deserialize(self, value, attr, data, **kwargs):
        if not isinstance(value, str):
            raise self.make_error("invalid", input=value, obj_type=self.OBJ_TYPE)
        try:
            return rfc3339str_to_datetime(value)
        except ValueError as err:
            raise self.make_error(
                "invalid", input=value, obj_type=self.OBJ_TYPE
            ) from err


class JsonSerializable:
    """
    Simple type wrapper mixin for json serialize/deserialize of objects to reduce boilerplate.

    To use: add as a parent type and set __schema__ at the class level to the Schema object that is the json schema to
    use. Then call <class>.from_json(dict) and <obj>.to_json()

    Example:
        class Reference(JsonSerializable):
          class ReferenceV1Schema(Schema):
            url = fields.Str()

            # This tells the system to return the actual object type rather than a serialization result
            @post_load
            def make(self, data, **kwargs):
              return Reference(**data)

          __schema__ = ReferenceV1Schema()

          # Needs a kwargs-style constructor for the @post_load/make() call to work
          def __init__(self, url=None):
            self.url = url

    """

    __schema__: Schema = None

    @classmethod
    def from_json(cls, data):
        return cls.__schema__.load(data)

    @classmethod
    def from_json_str(cls, data):
        return cls.from_json(json.loads(data))

    def to_json(self):
        return self.__schema__.dump(self)

    def to_json_str(self):
        return canonical_json(self.to_json())

    def __eq__(self, other):
        if type(self) is not type(other):
            return False
        return self.to_json() == other.to_json()

    def __repr__(self):
        return "<{} {}>".format(self.__class__.__name__, self.to_json_str())


def canonical_json(data):
    """
    Compact json with sorted keys, so equal content always serializes to identical bytes.
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


class RecordSchema(Schema):
    """
    Base for upstream-facing schemas. Unknown keys are dropped at every nesting level, upstream processors add fields
    over time.
    """

    class Meta:
        unknown = marshmallow.EXCLUDE
