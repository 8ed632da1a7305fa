"""Raw .eml parsing into the fields shown by the viewer."""

from dataclasses import asdict, dataclass, field
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser

from .errors import ContentCorrupted


@dataclass
class Attachment:
    filename: str
    content_type: str
    size: int


@dataclass
class ParsedMessage:
    """Subject, addresses, date, bodies and attachments of one raw message."""
    subject: str
    from_: str
    to: str
    date: str | None  # ISO 8601, None if missing or unparseable
    text: str | None = None
    html: str | None = None
    attachments: list[Attachment] = field(default_factory=list)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["from"] = d.pop("from_")
        return d


def _header(msg: EmailMessage, name: str) -> str:
    """Header value as text, falling back to the raw value if it won't parse."""
    try:
        value = msg.get(name)
        return str(value) if value is not None else ""
    except (ValueError, TypeError, IndexError, AttributeError):
        for key, raw in msg.raw_items():
            if key.lower() == name.lower():
                return str(raw).strip()
        return ""


def _date(msg: EmailMessage) -> str | None:
    try:
        header = msg.get("Date")
        dt = getattr(header, "datetime", None)
    except (ValueError, TypeError, IndexError, AttributeError):
        return None
    return dt.isoformat() if dt else None


def _content(part) -> str | None:
    try:
        content = part.get_content()
    except (LookupError, ValueError, AttributeError):
        payload = part.get_payload(decode=True)
        return payload.decode("utf-8", errors="replace") if payload else None
    return content if isinstance(content, str) else None


def _bodies(msg: EmailMessage) -> tuple[str | None, str | None]:
    """First text/plain and text/html bodies (not attachments)."""
    text = None
    html = None
    if msg.is_multipart():
        for part in msg.walk():
            if part.is_multipart() or part.get_filename():
                continue
            ct = part.get_content_type()
            if ct == "text/plain" and text is None:
                text = _content(part)
            elif ct == "text/html" and html is None:
                html = _content(part)
    else:
        content = _content(msg)
        if msg.get_content_type() == "text/html":
            html = content
        else:
            text = content
    return text, html


def _attachments(msg: EmailMessage) -> list[Attachment]:
    attachments = []
    if not msg.is_multipart():
        return attachments
    for part in msg.walk():
        filename = part.get_filename()
        if not filename:
            continue
        payload = part.get_payload(decode=True)
        attachments.append(Attachment(
            filename=filename,
            content_type=part.get_content_type(),
            size=len(payload) if payload else 0,
        ))
    return attachments


def parse_message(raw: bytes, source=None) -> ParsedMessage:
    """Parse raw message bytes.

    Raises ContentCorrupted if the bytes carry no headers at all or the
    parser gives up.
    """
    try:
        msg = BytesParser(policy=policy.default).parsebytes(raw)
        if not msg.keys():
            raise ContentCorrupted(source or "<bytes>", "no headers")
        text, html = _bodies(msg)
        return ParsedMessage(
            subject=_header(msg, "Subject"),
            from_=_header(msg, "From"),
            to=_header(msg, "To"),
            date=_date(msg),
            text=text,
            html=html,
            attachments=_attachments(msg),
        )
    except ContentCorrupted:
        raise
    except Exception as e:
        raise ContentCorrupted(source or "<bytes>", str(e)) from e
