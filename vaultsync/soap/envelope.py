from __future__ import annotations

import re
from dataclasses import dataclass

from lxml import etree

from ..models.card_profile import PROFILE_TAGS, CardProfile

"""SOAP envelope builder for the AddCard / UpdateCard operations.

One renderer serves both operations; they differ only in the operation element
name and in UpdateCard carrying the card number once more ahead of the
CardProfile block. Every CardProfile tag is always emitted, empty when unset.
Characters that XML 1.0 cannot carry (vertical tab, form feed and other C0
controls) are dropped from values.
"""

__all__ = [
    "SOAP11_NS",
    "SOAP12_NS",
    "CreateCardRequest",
    "UpdateCardRequest",
    "CardRequest",
    "build_envelope",
    "xml_text",
    "redact_envelope",
]

SOAP11_NS = "http://schemas.xmlsoap.org/soap/envelope/"
SOAP12_NS = "http://www.w3.org/2003/05/soap-envelope"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
XSD_NS = "http://www.w3.org/2001/XMLSchema"

_XML_ILLEGAL_RE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")
_PHOTO_RE = re.compile(r"<Photo>(.*?)</Photo>", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class CreateCardRequest:
    profile: CardProfile
    operation_name: str = "AddCard"


@dataclass(frozen=True)
class UpdateCardRequest:
    card_no: str
    profile: CardProfile
    operation_name: str = "UpdateCard"


CardRequest = CreateCardRequest | UpdateCardRequest


def xml_text(value: str | None) -> str:
    """Element text for a profile value; None renders empty."""
    if value is None:
        return ""
    return _XML_ILLEGAL_RE.sub("", str(value))


def soap_namespace(soap_version: str) -> str:
    return SOAP12_NS if soap_version == "1.2" else SOAP11_NS


def build_envelope(request: CardRequest, namespace: str, soap_version: str = "1.1") -> str:
    """Render the full SOAP document for a create or update request."""
    soap_ns = soap_namespace(soap_version)
    env = etree.Element(
        f"{{{soap_ns}}}Envelope",
        nsmap={"xsi": XSI_NS, "xsd": XSD_NS, "soap": soap_ns},
    )
    body = etree.SubElement(env, f"{{{soap_ns}}}Body")

    def qname(tag: str) -> str:
        return f"{{{namespace}}}{tag}" if namespace else tag

    op = etree.SubElement(body, qname(request.operation_name),
                          nsmap={None: namespace} if namespace else None)
    if isinstance(request, UpdateCardRequest):
        etree.SubElement(op, qname("CardNo")).text = xml_text(request.card_no)
    block = etree.SubElement(op, qname("CardProfile"))
    for tag, attr in PROFILE_TAGS:
        etree.SubElement(block, qname(tag)).text = xml_text(getattr(request.profile, attr))

    xml = etree.tostring(env, xml_declaration=True, encoding="utf-8", pretty_print=True)
    return xml.decode("utf-8")


def redact_envelope(envelope: str) -> str:
    """Replace non-empty Photo content with ``[redacted]`` for logging."""
    def _sub(match: re.Match[str]) -> str:
        return "<Photo>[redacted]</Photo>" if match.group(1).strip() else "<Photo></Photo>"

    return _PHOTO_RE.sub(_sub, envelope)
