"""
Name Certificate - HTML document for a generated Chinese name.
"""

from datetime import UTC, datetime
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from namegen.models.api import NameData, UserData
from namegen.models.domain import PDFMargins, PDFOptions

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
CERTIFICATE_TEMPLATE = "name_certificate.html.j2"

CERTIFICATE_PDF_OPTIONS = PDFOptions(format="A4", margin=PDFMargins())

_environment = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(enabled_extensions=("html", "j2"), default=True),
    trim_blocks=True,
    lstrip_blocks=True,
)


def generate_certificate_html(
    name_data: NameData,
    user_data: UserData,
    issued_at: datetime | None = None,
) -> str:
    """Render the certificate page; all user-supplied text is HTML-escaped."""
    template = _environment.get_template(CERTIFICATE_TEMPLATE)
    issued = issued_at or datetime.now(UTC)
    return template.render(
        name=name_data,
        user=user_data,
        issued_on=issued.strftime("%B %d, %Y"),
    )


def certificate_file_name(name_data: NameData) -> str:
    """Download name, e.g. "李明_certificate.pdf"."""
    return f"{name_data.chinese}_certificate.pdf"
