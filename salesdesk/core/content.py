"""
Proposal payloads come in two shapes: a structured form, and an older one
where sales pasted an edited HTML document. The shape is decided once here
so callers never sniff the raw JSON themselves.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional, Union


@dataclass(frozen=True)
class StructuredContent:
    fields: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        value = self.fields.get(key)
        return default if value in (None, "") else value

    @property
    def client_email(self) -> Optional[str]:
        email = self.get("clientEmail")
        return email.strip().lower() if email else None

    @property
    def client_name(self) -> Optional[str]:
        return self.get("clientName")

    @property
    def client_company(self) -> Optional[str]:
        return self.get("clientCompany")

    @property
    def client_phone(self) -> Optional[str]:
        return self.get("clientPhone")

    @property
    def client_address(self) -> Optional[str]:
        return self.get("clientAddress")

    @property
    def client_industry(self) -> Optional[str]:
        return self.get("clientIndustry")

    @property
    def validity_days(self) -> Optional[int]:
        terms = self.fields.get("terms") or {}
        raw = terms.get("validityDays") if isinstance(terms, dict) else None
        if raw in (None, ""):
            raw = self.fields.get("validityDays")
        try:
            days = int(raw)
        except (TypeError, ValueError):
            return None
        return days if days > 0 else None


@dataclass(frozen=True)
class RenderedContent(StructuredContent):
    html: str = ""


ProposalContent = Union[StructuredContent, RenderedContent]


def parse_proposal_content(raw: Union[str, dict, None]) -> ProposalContent:
    if raw is None or raw == "":
        return StructuredContent({})
    data = json.loads(raw) if isinstance(raw, str) else dict(raw)
    if not isinstance(data, dict):
        raise ValueError("Proposal content must be a JSON object")
    html = data.get("editedHtmlContent")
    if isinstance(html, str) and html.strip():
        return RenderedContent(fields=data, html=html)
    return StructuredContent(fields=data)


def serialize_proposal_content(content: Union[str, dict, ProposalContent]) -> str:
    if isinstance(content, str):
        parse_proposal_content(content)
        return content
    if isinstance(content, StructuredContent):
        return json.dumps(content.fields)
    return json.dumps(content)
