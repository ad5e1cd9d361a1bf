"""
Low-level XML helpers shared by the validator and the decoder.

Uploaded maps are untrusted, so parsing goes through defusedxml. Elements are
matched on their local name: a default namespace on the root
(``<Map xmlns="...">``) must not hide ``Device`` or ``Row`` elements.
"""
from typing import Iterator, Optional, Union
from xml.etree.ElementTree import Element

import defusedxml.ElementTree as ET


def parse_markup(text: Union[str, bytes]) -> Element:
    """
    Parses map text and returns the root element.

    Raises:
        xml.etree.ElementTree.ParseError: Malformed markup.
        defusedxml.DefusedXmlException: Forbidden constructs (entities, DTDs).
        TypeError: ``text`` is not str/bytes.
    """
    if not isinstance(text, (str, bytes)):
        raise TypeError(f"Map content must be str or bytes, got {type(text).__name__}")
    return ET.fromstring(text)


def local_name(tag) -> str:
    """Strips a '{namespace}' prefix from an element tag."""
    if not isinstance(tag, str):
        # Comments and processing instructions carry callables as tags
        return ""
    return tag.rsplit("}", 1)[-1]


def iter_elements(root: Element, name: str) -> Iterator[Element]:
    """Yields every element (root included) named ``name``, in document order."""
    for element in root.iter():
        if local_name(element.tag) == name:
            yield element


def first_element(root: Element, name: str) -> Optional[Element]:
    return next(iter_elements(root, name), None)


def element_text(element: Element) -> str:
    """Concatenated text content of an element and its descendants."""
    return "".join(element.itertext())
