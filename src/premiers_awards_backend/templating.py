"""
HTML rendering of nomination documents.

The rendered page is sent to the PDF converter, so every value is escaped
by Jinja2 and free-text evaluation sections pass through an allow-list
sanitizer before they are embedded.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo

import nh3
from jinja2 import Environment, PackageLoader, select_autoescape
from markupsafe import Markup

from .models import AttachmentRecord, NominationRecord, Nominator
from .package_id import submission_id
from .schema import SchemaLookup, has_section, require_text

ALLOWED_TAGS = frozenset({"div", "p", "br", "b", "i", "em", "strong", "ol", "ul", "li", "blockquote"})
DEFAULT_TIMEZONE = "America/Vancouver"

_environment = Environment(
    loader=PackageLoader("premiers_awards_backend", "templates"),
    autoescape=select_autoescape(["html"]),
)


@dataclass(frozen=True)
class TableRow:
    label: str
    value: str
    visible: bool


def sanitize_html(text: str) -> Markup:
    """Strip every tag outside ALLOWED_TAGS and every attribute."""
    return Markup(nh3.clean(text or "", tags=set(ALLOWED_TAGS), attributes={}))


def html_list(items: Sequence[str], ordered: bool = False) -> Markup:
    """Escaped ``<ul>``/``<ol>`` of ``items``; empty input renders nothing."""
    if not items:
        return Markup("")
    tag = "ol" if ordered else "ul"
    entries = Markup("").join(Markup("<li>{}</li>").format(item) for item in items)
    return Markup("<{tag}>{entries}</{tag}>").format(tag=Markup(tag), entries=entries)


def _nominator_line(nominator: Nominator) -> str:
    line = f"{nominator.firstname} {nominator.lastname}"
    if nominator.title:
        line += f", {nominator.title}"
    if nominator.email:
        line += f", {nominator.email}"
    return line


def _attachment_line(attachment: AttachmentRecord) -> str:
    line = attachment.display_name
    if attachment.description:
        line += f": {attachment.description}"
    return line


class NominationRenderer:
    """Builds the nomination HTML document from a record and its attachments."""

    def __init__(self, schema: SchemaLookup, timezone: str = DEFAULT_TIMEZONE) -> None:
        self.schema = schema
        self.timezone = ZoneInfo(timezone)

    def evaluation_html(self, nomination: NominationRecord) -> Markup:
        """Sanitized sections declared for the nomination's category, in declared order."""
        declared = self.schema.sections_for(nomination.category)
        applicable = [key for key in nomination.evaluation if has_section(self.schema, key, nomination.category)]
        blocks: List[Markup] = []
        for section in sorted(applicable, key=declared.index):
            text = nomination.evaluation[section]
            if not text or not text.strip():
                continue
            heading = require_text(self.schema, "evaluation_sections", section)
            blocks.append(Markup("<h3>{}</h3><div>{}</div>").format(heading, sanitize_html(text)))
        return Markup(" ").join(blocks)

    def _organization_text(self, keys: Iterable[str]) -> str:
        return ", ".join(require_text(self.schema, "organizations", key) for key in keys)

    def rows(
        self,
        nomination: NominationRecord,
        attachments: Sequence[AttachmentRecord],
        created: datetime,
    ) -> List[TableRow]:
        nominee = nomination.nominee
        evaluation = self.evaluation_html(nomination)
        return [
            TableRow("Created", created.strftime("%Y-%m-%d, %I:%M:%S %p"), True),
            TableRow("Application Category", require_text(self.schema, "categories", nomination.category), True),
            TableRow(
                "Name of Ministry or eligible organization sponsoring this application",
                self._organization_text(nomination.organizations),
                True,
            ),
            TableRow("Nomination Title", nomination.title, bool(nomination.title)),
            TableRow("Nominee", nominee.full_name, bool(nominee.firstname and nominee.lastname)),
            TableRow("Number of Nominees", str(nomination.nominees), nomination.nominees > 0),
            TableRow(
                "Partners",
                html_list([partner.organization for partner in nomination.partners]),
                bool(nomination.partners),
            ),
            TableRow(
                "Nominators",
                html_list([_nominator_line(nominator) for nominator in nomination.nominators]),
                bool(nomination.nominators),
            ),
            TableRow(
                "Attachments",
                html_list([_attachment_line(attachment) for attachment in attachments], ordered=True),
                bool(attachments),
            ),
            TableRow("Evaluation Considerations", evaluation, bool(evaluation)),
        ]

    def render(
        self,
        nomination: NominationRecord,
        attachments: Sequence[AttachmentRecord] = (),
        created: Optional[datetime] = None,
    ) -> str:
        created = created or datetime.now(self.timezone)
        rows = [row for row in self.rows(nomination, attachments, created) if row.visible]
        template = _environment.get_template("nomination.html")
        return template.render(
            title=nomination.title,
            submission_id=submission_id(nomination.seq),
            rows=rows,
        )
