"""Rule-based intent router — keyword gates plus ordered regex slot rules.

Turns one utterance into zero or more ToolCalls without any model call. Each
tool family is gated by trigger substrings; a gated family always produces a
call, filling every slot no rule could extract with a fixed default. The
extraction is approximate: rules are tried in order and the first match for a
slot wins, even when a later rule would have read the sentence better.
"""
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from .catalog import ToolCall

logger = logging.getLogger(__name__)

EMAIL = r"[\w.+-]+@[\w-]+(?:\.[\w-]+)+"
URL = r"https?://[^\s<>\"']+"
PHONE = r"\+?\d[\d\s().-]{6,}\d"

_TIME_STOP = r"(?=\s+(?:on|at|from|for|tomorrow|today|tonight|next|with)\b|[.!?]*$)"
_SUBJECT_STOP = r"(?=\s+(?:and\s+)?(?:with|saying|that\s+says|telling)\b|[.!?]*$)"

DEFAULT_HOUR = 9  # events with a day but no time start at 09:00


@dataclass
class Context:
    text: str
    now: datetime
    args: Dict[str, Any]


Extractor = Callable[[re.Match, Context], Any]


@dataclass
class Slot:
    name: str
    rules: List[Tuple[re.Pattern, Extractor]]
    default: Any = None  # literal, callable(ctx), or None to leave the argument out


@dataclass
class ToolFamily:
    name: str
    triggers: Tuple[str, ...]
    tools: Tuple[str, ...]  # canonical name first, then aliases other backends use
    slots: List[Slot]


_FAMILIES: List[ToolFamily] = []


def _strip_punctuation(text: str) -> str:
    """Strip trailing punctuation from text."""
    return text.rstrip("。！？，、；：….!?,;:")


def _strip_quotes(text: str) -> str:
    return text.strip().strip("\"'“”‘’`").strip()


# ── Slot extractors ─────────────────────────────────────────

def _text(m, ctx):
    return _strip_punctuation(_strip_quotes(m.group(1)))


def _verbatim(m, ctx):
    return _strip_quotes(m.group(1))


def _whole(m, ctx):
    return m.group(0)


def _url(m, ctx):
    return m.group(0).rstrip(".,;:!?)]}'\"")


def _bare_domain(m, ctx):
    return "https://" + m.group(1).rstrip(".,;:!?)]}'\"")


def _phone(m, ctx):
    raw = m.group(0).strip()
    digits = re.sub(r"\D", "", raw)
    if len(digits) < 7:
        return None
    return ("+" if raw.startswith("+") else "") + digits


def _clock(hour, minute, ampm) -> Optional[Tuple[int, int]]:
    h = int(hour)
    mi = int(minute or 0)
    if ampm:
        ampm = ampm.lower()
        if h > 12:
            return None
        if ampm == "pm" and h < 12:
            h += 12
        elif ampm == "am" and h == 12:
            h = 0
    if not (0 <= h < 24 and 0 <= mi < 60):
        return None
    return h, mi


def _day(word: str, now: datetime) -> datetime:
    offset = 1 if word.lower() == "tomorrow" else 0
    return (now + timedelta(days=offset)).replace(hour=0, minute=0, second=0, microsecond=0)


def _iso(dt: datetime) -> str:
    return dt.replace(microsecond=0).isoformat()


def _iso_datetime(m, ctx):
    try:
        day = datetime.strptime(m.group(1), "%Y-%m-%d")
    except ValueError:
        return None
    if m.group(2) is None:
        return _iso(day.replace(hour=DEFAULT_HOUR))
    clock = _clock(m.group(2), m.group(3), None)
    second = int(m.group(4) or 0)
    if clock is None or second > 59:
        return None
    return _iso(day.replace(hour=clock[0], minute=clock[1], second=second))


def _day_then_time(m, ctx):
    clock = _clock(m.group(2), m.group(3), m.group(4))
    if clock is None:
        return None
    return _iso(_day(m.group(1), ctx.now).replace(hour=clock[0], minute=clock[1]))


def _time_then_day(m, ctx):
    clock = _clock(m.group(1), m.group(2), m.group(3))
    if clock is None:
        return None
    return _iso(_day(m.group(4), ctx.now).replace(hour=clock[0], minute=clock[1]))


def _time_today(m, ctx):
    clock = _clock(m.group(1), m.group(2), m.group(3))
    if clock is None:
        return None
    return _iso(_day("today", ctx.now).replace(hour=clock[0], minute=clock[1]))


def _day_only(m, ctx):
    hour = 19 if m.group(1).lower() == "tonight" else DEFAULT_HOUR
    return _iso(_day(m.group(1), ctx.now).replace(hour=hour))


def _start(ctx) -> datetime:
    try:
        return datetime.fromisoformat(ctx.args["startTime"])
    except (KeyError, TypeError, ValueError):
        return _day("tomorrow", ctx.now).replace(hour=DEFAULT_HOUR)


def _end_clock(m, ctx):
    clock = _clock(m.group(1), m.group(2), m.group(3))
    if clock is None:
        return None
    start = _start(ctx)
    end = start.replace(hour=clock[0], minute=clock[1], second=0)
    if end <= start:
        return None
    return _iso(end)


def _end_duration(m, ctx):
    amount = int(m.group(1))
    unit = m.group(2).lower()
    try:
        delta = timedelta(hours=amount) if unit.startswith("h") else timedelta(minutes=amount)
        if not delta:
            return None
        return _iso(_start(ctx) + delta)
    except OverflowError:
        return None


def _default_start(ctx):
    return _iso(_day("tomorrow", ctx.now).replace(hour=DEFAULT_HOUR))


def _default_end(ctx):
    start = _start(ctx)
    try:
        return _iso(start + timedelta(hours=1))
    except OverflowError:
        return _iso(start)


def _first_email_list(m, ctx):
    return [m.group(0)]


def _sql(m, ctx):
    return m.group(1).strip().rstrip(";").strip()


_DB_TYPES = {
    "postgres": "postgresql", "postgresql": "postgresql",
    "mysql": "mysql", "mariadb": "mariadb", "sqlite": "sqlite",
    "mongo": "mongodb", "mongodb": "mongodb",
}


def _db_type(m, ctx):
    return _DB_TYPES.get(m.group(1).lower())


def _json_object(m, ctx):
    try:
        value = json.loads(m.group(1))
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


_EXTRACTION_TYPES = {
    "email": "emails", "e-mail": "emails", "url": "urls", "link": "urls",
    "date": "dates", "name": "names", "phone": "phones",
}


def _extraction_type(m, ctx):
    word = m.group(1).lower()
    for prefix, kind in _EXTRACTION_TYPES.items():
        if word.startswith(prefix):
            return kind
    return None


def _utterance(ctx):
    return ctx.text


def _utterance_query(ctx):
    return _strip_punctuation(ctx.text)


# ── Rule table ──────────────────────────────────────────────

def _rule(pattern: str, extractor: Extractor, flags: int = re.IGNORECASE):
    return re.compile(pattern, flags), extractor


_MESSAGE_RULES = [
    r"\b(?:saying|that\s+says|which\s+says)\s*[:=]?\s*(.+)$",
    r"\bwith\s+(?:the\s+)?(?:message|text)\s*[:=]?\s*(.+)$",
    r"\bmessage\s*[:=]\s*(.+)$",
    r"[\"“]([^\"”]+)[\"”]",
]


def _build_rules():
    global _FAMILIES

    families = [
        # ── Email ─────────────────────────────────────────
        ToolFamily(
            "email",
            triggers=("email", "e-mail", "mail to"),
            tools=("send_email", "composio_send_email"),
            slots=[
                Slot("to", [_rule(EMAIL, _whole)], default=""),
                Slot("subject", [
                    _rule(r"\bsubject\s*(?:line\s*)?[:=]?\s*[\"“']([^\"”']+)[\"”']", _verbatim),
                    _rule(r"\bsubject\s*(?:line\s*)?[:=]\s*(.+?)"
                          r"(?=\s+(?:and\s+)?(?:with\s+)?(?:the\s+)?(?:body|message|text)\b|[.!?]*$)", _text),
                    _rule(r"\babout\s+(.+?)" + _SUBJECT_STOP, _text),
                    _rule(r"\b(?:titled|entitled|regarding|re:)\s+(.+?)" + _SUBJECT_STOP, _text),
                ], default="Message from AI Assistant"),
                Slot("body", [
                    _rule(r"\bwith\s+(?:the\s+)?(?:message|body|text|content)\s*[:=]?\s*(.+)$", _verbatim),
                    _rule(r"\b(?:body|message)\s*[:=]\s*(.+)$", _verbatim),
                    _rule(r"\b(?:saying|that\s+says|which\s+says|telling\s+(?:him|her|them))\s+(.+)$", _verbatim),
                ], default="This email was sent by the AI Assistant."),
            ],
        ),

        # ── WhatsApp ──────────────────────────────────────
        ToolFamily(
            "whatsapp",
            triggers=("whatsapp", "whats app"),
            tools=("send_whatsapp", "composio_whatsapp_message"),
            slots=[
                Slot("phoneNumber", [_rule(PHONE, _phone)], default=""),
                Slot("message", [_rule(p, _verbatim) for p in _MESSAGE_RULES],
                     default="Hello from AI Assistant!"),
            ],
        ),

        # ── Slack ─────────────────────────────────────────
        ToolFamily(
            "slack",
            triggers=("slack",),
            tools=("send_slack", "composio_slack_message"),
            slots=[
                Slot("channel", [
                    _rule(r"(?<![\w&])(#[\w-]+)", lambda m, ctx: m.group(1)),
                    _rule(r"\bchannel\s+([\w-]+)", lambda m, ctx: "#" + m.group(1)),
                ], default="#general"),
                Slot("message", [_rule(p, _verbatim) for p in _MESSAGE_RULES],
                     default="Hello from AI Assistant!"),
            ],
        ),

        # ── Calendar ──────────────────────────────────────
        ToolFamily(
            "calendar",
            triggers=("calendar", "schedule", "meeting", "appointment"),
            tools=("create_calendar_event", "composio_calendar_event"),
            slots=[
                Slot("title", [
                    _rule(r"\b(?:titled|called|named)\s+[\"“']([^\"”']+)[\"”']", _verbatim),
                    _rule(r"\b(?:titled|called|named)\s+(.+?)" + _TIME_STOP, _text),
                    _rule(r"\b(?:meeting|event|appointment|call)\s+(?:about|for|regarding|on)\s+(.+?)"
                          + _TIME_STOP, _text),
                ], default="Meeting"),
                Slot("startTime", [
                    _rule(r"\b(\d{4}-\d{2}-\d{2})(?:[T ](\d{1,2}):(\d{2})(?::(\d{2}))?)?", _iso_datetime),
                    _rule(r"\b(today|tomorrow|tonight)\s+(?:at\s+)?(\d{1,2})(?::(\d{2}))?\s*(am|pm)?\b",
                          _day_then_time),
                    _rule(r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)\s+(today|tomorrow|tonight)\b", _time_then_day),
                    _rule(r"\b(?:at|from)\s+(\d{1,2})(?::(\d{2}))?\s*(am|pm)\b", _time_today),
                    _rule(r"\b(?:at|from)\s+(\d{1,2}):(\d{2})()", _time_today),
                    _rule(r"\b(today|tomorrow|tonight)\b", _day_only),
                ], default=_default_start),
                Slot("endTime", [
                    _rule(r"\b(?:to|until|till)\s+(\d{4}-\d{2}-\d{2})[T ](\d{1,2}):(\d{2})(?::(\d{2}))?",
                          _iso_datetime),
                    _rule(r"\b(?:to|until|till)\s+(\d{1,2})(?::(\d{2}))?\s*(am|pm)\b", _end_clock),
                    _rule(r"\bfor\s+(\d+)\s*(hours?|hrs?|minutes?|mins?)\b", _end_duration),
                ], default=_default_end),
                Slot("attendees", [_rule(EMAIL, _first_email_list)]),
            ],
        ),

        # ── CRM contact ───────────────────────────────────
        ToolFamily(
            "crm",
            triggers=("crm", "add contact", "new contact", "create contact"),
            tools=("create_crm_contact", "composio_crm_contact"),
            slots=[
                Slot("firstName", [
                    _rule(r"\b(?:[Cc]ontact|[Nn]amed|[Cc]alled|[Ff]or)\s+([A-Z][a-zA-Z'-]+)\s+[A-Z][a-zA-Z'-]+",
                          lambda m, ctx: m.group(1), flags=0),
                ], default="Unknown"),
                Slot("lastName", [
                    _rule(r"\b(?:[Cc]ontact|[Nn]amed|[Cc]alled|[Ff]or)\s+[A-Z][a-zA-Z'-]+\s+([A-Z][a-zA-Z'-]+)",
                          lambda m, ctx: m.group(1), flags=0),
                ], default="Contact"),
                Slot("email", [_rule(EMAIL, _whole)], default=""),
                Slot("phone", [_rule(PHONE, _phone)]),
                Slot("company", [
                    _rule(r"\b(?:works\s+at|at|from|company)\s+([A-Z][\w&.-]*(?:\s+[A-Z][\w&.-]*)*)",
                          lambda m, ctx: _strip_punctuation(m.group(1)), flags=0),
                ]),
            ],
        ),

        # ── Database ──────────────────────────────────────
        ToolFamily(
            "database",
            triggers=("database", "sql"),
            tools=("query_database", "composio_database_query"),
            slots=[
                Slot("query", [
                    _rule(r"[\"“`]((?:select|insert|update|delete|with)\b[^\"”`]+)[\"”`]", _sql),
                    _rule(r"\b((?:select|insert\s+into|update|delete\s+from)\b.+?)(?:;|$)", _sql),
                    _rule(r"\bquery\s*[:=]\s*(.+)$", _sql),
                ], default="SELECT 1"),
                Slot("databaseType", [
                    _rule(r"\b(postgres(?:ql)?|mysql|mariadb|sqlite|mongo(?:db)?)\b", _db_type),
                ], default="postgresql"),
            ],
        ),

        # ── Webhook ───────────────────────────────────────
        ToolFamily(
            "webhook",
            triggers=("webhook",),
            tools=("trigger_webhook", "composio_webhook_trigger"),
            slots=[
                Slot("webhookUrl", [_rule(URL, _url)], default=""),
                Slot("method", [
                    _rule(r"\b(GET|POST|PUT|PATCH|DELETE)\b", lambda m, ctx: m.group(1), flags=0),
                ], default="POST"),
                Slot("payload", [_rule(r"(\{.*\})", _json_object, flags=re.DOTALL)]),
            ],
        ),

        # ── Web scraping ──────────────────────────────────
        ToolFamily(
            "scrape",
            triggers=("scrape", "scraping", "crawl", "fetch", "website", "webpage", "web page"),
            tools=("web_scraper", "firecrawl_scraper"),
            slots=[
                Slot("url", [
                    _rule(URL, _url),
                    _rule(r"(?<![@\w.])((?:www\.)?[a-z0-9][a-z0-9-]*(?:\.[a-z0-9-]+)*"
                          r"\.(?:com|org|net|io|dev|ai|edu|gov|co)\b(?:/\S*)?)", _bare_domain),
                ], default=""),
            ],
        ),

        # ── Web search ────────────────────────────────────
        ToolFamily(
            "search",
            triggers=("search", "google", "look up"),
            tools=("web_search", "firecrawl_search"),
            slots=[
                Slot("query", [
                    _rule(r"\b(?:search\s+(?:the\s+web\s+|online\s+|google\s+)?for|google|look\s+up)\s+(.+)$",
                          _text),
                    _rule(r"\bsearch\s+(.+)$", _text),
                ], default=_utterance_query),
            ],
        ),

        # ── Data extraction ───────────────────────────────
        ToolFamily(
            "extract",
            triggers=("extract",),
            tools=("data_extractor",),
            slots=[
                Slot("content", [
                    _rule(r"[\"“]([^\"”]+)[\"”]", _verbatim),
                    _rule(r"\b(?:from|in)\s*:\s*(.+)$", _verbatim),
                ], default=_utterance),
                Slot("extraction_type", [
                    _rule(r"\b(e-?mails?|urls?|links?|dates?|names?|phones?)\b", _extraction_type),
                ], default="all"),
            ],
        ),
    ]

    _FAMILIES.clear()
    _FAMILIES.extend(families)


def families() -> List[ToolFamily]:
    return list(_FAMILIES)


def get_family(name: str) -> Optional[ToolFamily]:
    for family in _FAMILIES:
        if family.name == name:
            return family
    return None


def is_gated(family: ToolFamily, text: str) -> bool:
    lowered = text.lower()
    return any(trigger in lowered for trigger in family.triggers)


def extract_args(family: ToolFamily, text: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Fill every slot of one family from text; first matching rule wins."""
    ctx = Context(text=text, now=now or datetime.now(), args={})
    for slot in family.slots:
        value = None
        for regex, extractor in slot.rules:
            match = regex.search(text)
            if not match:
                continue
            try:
                value = extractor(match, ctx)
            except (ValueError, OverflowError) as e:
                # Out-of-range dates and numbers count as no match
                logger.warning(f"Router rule for {family.name}.{slot.name} failed: {e}")
                value = None
            if value is not None and value != "":
                break
            value = None
        if value is None:
            value = slot.default(ctx) if callable(slot.default) else slot.default
        if value is not None:
            ctx.args[slot.name] = value
    return ctx.args


def resolve_tool_name(family: ToolFamily, catalog=None) -> str:
    """First of the family's names the catalog knows, else the canonical one."""
    if catalog is not None:
        for name in family.tools:
            if catalog.lookup(name) is not None:
                return name
    return family.tools[0]


def route(text: str, catalog=None, now: Optional[datetime] = None) -> List[ToolCall]:
    """Extract tool calls from text, in family order. Empty when nothing is gated."""
    text = text.strip()
    calls = []
    for family in _FAMILIES:
        if not is_gated(family, text):
            continue
        args = extract_args(family, text, now=now)
        tool_name = resolve_tool_name(family, catalog)
        logger.info(f"Router matched: '{text}' -> {tool_name}({args})")
        calls.append(ToolCall(tool=tool_name, args=args))
    return calls


_build_rules()
