import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, ClassVar, Iterable, Optional, Union

DEFAULT_TRIGGER_PHRASES = ("@bot", "@บอท")


class IntentKind(str, Enum):
    SEARCH = "search"  # "search for X" against the knowledge base
    CODE_LOOKUP = "code_lookup"  # exact knowledge-base code
    PAYMENT_CHECK = "payment_check"  # payment attempt status
    OCR_REQUEST = "ocr_request"  # read the pending image
    AI_CHAT = "ai_chat"  # open-ended completion
    IGNORE = "ignore"  # group chatter not addressed to the bot


@dataclass(frozen=True)
class Search:
    query: str
    kind: ClassVar[IntentKind] = IntentKind.SEARCH


@dataclass(frozen=True)
class CodeLookup:
    code: str
    kind: ClassVar[IntentKind] = IntentKind.CODE_LOOKUP


@dataclass(frozen=True)
class PaymentCheck:
    attempt_id: Optional[str] = None
    kind: ClassVar[IntentKind] = IntentKind.PAYMENT_CHECK


@dataclass(frozen=True)
class OcrRequest:
    # The media id is taken from the pending-image store when the request runs.
    kind: ClassVar[IntentKind] = IntentKind.OCR_REQUEST


@dataclass(frozen=True)
class AiChat:
    prompt: str
    kind: ClassVar[IntentKind] = IntentKind.AI_CHAT


@dataclass(frozen=True)
class Ignore:
    kind: ClassVar[IntentKind] = IntentKind.IGNORE


ClassifiedIntent = Union[Search, CodeLookup, PaymentCheck, OcrRequest, AiChat, Ignore]


@dataclass(frozen=True)
class TriggerMatch:
    triggered: bool
    cleaned: str


@dataclass(frozen=True)
class ClassificationInput:
    raw_text: str
    cleaned_text: str
    is_direct: bool
    has_pending_image: bool
    triggered: bool


SEARCH_PATTERNS = (
    re.compile(r"^(?:search|find|look\s*up)(?:\s+for)?(?:\s*[:：]\s*|\s+)(?P<query>\S.*)$", re.IGNORECASE | re.DOTALL),
    re.compile(r"^(?:ค้นหา|หาข้อมูล)\s*[:：]?\s*(?P<query>\S.*)$", re.DOTALL),
)

CODE_MARKER_PATTERN = re.compile(r"(?:\bcode|\berror|รหัส|โค้ด|#)\s*[:：\-]?\s*(?<!\d)(\d{3,5})(?!\d)", re.IGNORECASE)
CODE_ONLY_PATTERN = re.compile(r"^\s*(\d{3,5})\s*$")

# Up to three filler characters (spaces, punctuation) between the words of a phrase.
_FILL = r"[\s\W_]{0,3}"

PAYMENT_PATTERNS = (
    re.compile(rf"\b(?:check|verify|track){_FILL}(?:(?:my|the|a){_FILL})?payments?(?:{_FILL}status)?\b", re.IGNORECASE),
    re.compile(rf"\bpayments?{_FILL}status\b", re.IGNORECASE),
    re.compile(rf"\bstatus{_FILL}of{_FILL}(?:(?:my|the){_FILL})?payments?\b", re.IGNORECASE),
    re.compile(rf"(?:เช็ค|เช็ก|ตรวจสอบ|ตรวจ){_FILL}(?:สถานะ{_FILL})?(?:การ{_FILL})?(?:ชำระ|จ่าย|โอน)(?:{_FILL}เงิน)?"),
    re.compile(rf"สถานะ{_FILL}(?:การ{_FILL})?(?:ชำระ|จ่าย|โอน){_FILL}เงิน"),
)

REFERENCE_NUMBER_PATTERN = re.compile(r"(?<!\d)(\d{5,})(?!\d)")

OCR_COMMAND_PATTERNS = (
    re.compile(r"\bread\s+(?:it|this|that|(?:the\s+)?(?:image|picture|photo|pic))\b", re.IGNORECASE),
    re.compile(r"\bocr\b", re.IGNORECASE),
    re.compile(r"\bextract\s+(?:the\s+)?text\b", re.IGNORECASE),
    re.compile(r"อ่าน(?:รูป|ภาพ|ข้อความ|ให้หน่อย|หน่อย)"),
)

_WHITESPACE = re.compile(r"\s+")


def _collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _phrase_patterns(phrases: Iterable[str]) -> list[re.Pattern]:
    return [re.compile(re.escape(phrase), re.IGNORECASE) for phrase in phrases if phrase]


def has_trigger(text: str, phrases: Iterable[str] = DEFAULT_TRIGGER_PHRASES) -> bool:
    if not text:
        return False
    return any(pattern.search(text) for pattern in _phrase_patterns(phrases))


def strip_triggers(text: str, phrases: Iterable[str] = DEFAULT_TRIGGER_PHRASES) -> str:
    """Remove every trigger phrase, case-insensitively.

    Repeats until no phrase is left, so removing one occurrence cannot leave
    a new one behind and stripping the result again changes nothing.
    """
    if not text:
        return ""
    patterns = _phrase_patterns(phrases)
    cleaned = text
    while True:
        stripped = cleaned
        for pattern in patterns:
            stripped = pattern.sub(" ", stripped)
        if stripped == cleaned:
            break
        cleaned = stripped
    return _collapse_whitespace(cleaned)


def match_trigger(text: str, phrases: Iterable[str] = DEFAULT_TRIGGER_PHRASES) -> TriggerMatch:
    phrases = tuple(phrases)
    if has_trigger(text, phrases):
        return TriggerMatch(triggered=True, cleaned=strip_triggers(text, phrases))
    return TriggerMatch(triggered=False, cleaned=_collapse_whitespace(text or ""))


def is_payment_request(text: str) -> bool:
    return any(pattern.search(text) for pattern in PAYMENT_PATTERNS)


def is_ocr_command(text: str) -> bool:
    return any(pattern.search(text) for pattern in OCR_COMMAND_PATTERNS)


def extract_search_query(text: str) -> Optional[str]:
    for pattern in SEARCH_PATTERNS:
        match = pattern.match(text)
        if not match:
            continue
        query = _collapse_whitespace(match.group("query"))
        if query and query.casefold() != "for":
            return query
    return None


def extract_code(text: str) -> Optional[str]:
    match = CODE_MARKER_PATTERN.search(text) or CODE_ONLY_PATTERN.match(text)
    return match.group(1) if match else None


def extract_reference_number(text: str) -> Optional[str]:
    match = REFERENCE_NUMBER_PATTERN.search(text)
    return match.group(1) if match else None


def _search_rule(data: ClassificationInput) -> Optional[ClassifiedIntent]:
    query = extract_search_query(data.cleaned_text)
    return Search(query=query) if query else None


def _code_rule(data: ClassificationInput) -> Optional[ClassifiedIntent]:
    code = extract_code(data.cleaned_text)
    return CodeLookup(code=code) if code else None


def _payment_rule(data: ClassificationInput) -> Optional[ClassifiedIntent]:
    if not is_payment_request(data.cleaned_text):
        return None
    return PaymentCheck(attempt_id=extract_reference_number(data.cleaned_text))


def _ocr_rule(data: ClassificationInput) -> Optional[ClassifiedIntent]:
    if not data.has_pending_image:
        return None
    if data.is_direct or data.triggered or is_ocr_command(data.cleaned_text):
        return OcrRequest()
    return None


def _ai_chat_rule(data: ClassificationInput) -> Optional[ClassifiedIntent]:
    if data.triggered:
        return AiChat(prompt=data.cleaned_text)
    if data.is_direct:
        return AiChat(prompt=data.raw_text)
    return None


IntentRule = Callable[[ClassificationInput], Optional[ClassifiedIntent]]

# Evaluated in order, first match wins.
INTENT_RULES: tuple[tuple[IntentKind, IntentRule], ...] = (
    (IntentKind.SEARCH, _search_rule),
    (IntentKind.CODE_LOOKUP, _code_rule),
    (IntentKind.PAYMENT_CHECK, _payment_rule),
    (IntentKind.OCR_REQUEST, _ocr_rule),
    (IntentKind.AI_CHAT, _ai_chat_rule),
)


def classify(
    text: str,
    *,
    is_direct: bool,
    has_pending_image: bool,
    trigger_phrases: Iterable[str] = DEFAULT_TRIGGER_PHRASES,
) -> ClassifiedIntent:
    """Pick the pipeline for one text message. Always returns a value."""
    text = text or ""
    trigger = match_trigger(text, trigger_phrases)
    data = ClassificationInput(
        raw_text=text,
        cleaned_text=trigger.cleaned,
        is_direct=is_direct,
        has_pending_image=has_pending_image,
        triggered=trigger.triggered,
    )
    # Group and room messages must address the bot explicitly.
    if not (data.is_direct or data.triggered):
        if data.has_pending_image and is_ocr_command(data.cleaned_text):
            return OcrRequest()
        return Ignore()

    for _kind, rule in INTENT_RULES:
        intent = rule(data)
        if intent is not None:
            return intent
    return Ignore()
