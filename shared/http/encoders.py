"""Interchangeable request/response body encoders.

The client core only talks to the ``Encoder`` protocol, so swapping JSON
for XML is a configuration change. Decoding validates the payload into the
receiver type with pydantic, so receivers can be models, dataclasses,
typed dicts or plain containers.
"""

from functools import lru_cache
from typing import IO, Any, Protocol, TypeVar, runtime_checkable
from xml.etree import ElementTree

import defusedxml.ElementTree as DefusedET
from pydantic import BaseModel, TypeAdapter
from pydantic_core import to_json, to_jsonable_python

T = TypeVar("T")

JSON_CONTENT_TYPE = "application/json"
XML_CONTENT_TYPE = "application/xml"


@runtime_checkable
class Encoder(Protocol):
    """Serializes request bodies and deserializes response bodies."""

    content_type: str
    accept: str

    def encode(self, value: Any) -> bytes: ...

    def encode_to(self, stream: IO[bytes], value: Any) -> None: ...

    def decode(self, data: bytes, receiver: type[T]) -> T: ...


@lru_cache(maxsize=256)
def _adapter(receiver: Any) -> TypeAdapter:
    return TypeAdapter(receiver)


class JSONEncoder:
    content_type = JSON_CONTENT_TYPE
    accept = JSON_CONTENT_TYPE

    def encode(self, value: Any) -> bytes:
        return to_json(value)

    def encode_to(self, stream: IO[bytes], value: Any) -> None:
        stream.write(self.encode(value))

    def decode(self, data: bytes, receiver: type[T]) -> T:
        return _adapter(receiver).validate_json(data)


class XMLEncoder:
    """XML encoding of mappings, models and lists.

    Lists are written as repeated ``<item>`` children of an element marked
    ``kind="list"``; ``None`` is written as an empty element marked
    ``nil="true"``. The root element is named after the model class.
    """

    content_type = XML_CONTENT_TYPE
    accept = XML_CONTENT_TYPE

    def encode(self, value: Any) -> bytes:
        tag = type(value).__name__ if isinstance(value, BaseModel) else "root"
        root = _to_element(tag, to_jsonable_python(value))
        return ElementTree.tostring(root, encoding="utf-8", xml_declaration=True)

    def encode_to(self, stream: IO[bytes], value: Any) -> None:
        stream.write(self.encode(value))

    def decode(self, data: bytes, receiver: type[T]) -> T:
        root = DefusedET.fromstring(data)
        return _adapter(receiver).validate_python(_from_element(root))


def _to_element(tag: str, value: Any) -> ElementTree.Element:
    element = ElementTree.Element(tag)
    if value is None:
        element.set("nil", "true")
    elif isinstance(value, dict):
        for key, child in value.items():
            element.append(_to_element(str(key), child))
    elif isinstance(value, list):
        element.set("kind", "list")
        for child in value:
            element.append(_to_element("item", child))
    elif isinstance(value, bool):
        element.text = "true" if value else "false"
    else:
        element.text = str(value)
    return element


def _from_element(element: ElementTree.Element) -> Any:
    if element.get("nil") == "true":
        return None
    if element.get("kind") == "list":
        return [_from_element(child) for child in element]
    children = list(element)
    if not children:
        return element.text or ""

    result: dict[str, Any] = {}
    for child in children:
        value = _from_element(child)
        if child.tag in result:
            # repeated tags without a list marker collapse into a list
            existing = result[child.tag]
            if not isinstance(existing, list):
                result[child.tag] = existing = [existing]
            existing.append(value)
        else:
            result[child.tag] = value
    return result
