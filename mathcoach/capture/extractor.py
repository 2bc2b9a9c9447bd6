from __future__ import annotations

import re

import structlog

from mathcoach.capture.types import DocumentSnapshot, InputField

logger = structlog.get_logger(__name__)

PROBLEM_PATTERN = re.compile(r"(\d+\s*[+\-×÷*/]\s*\d+)\s*=")
PROBLEM_MAX_LENGTH = 20

SCORE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"Score:\s*(\d+)"),
    re.compile(r"Final score:\s*(\d+)"),
    re.compile(r"Your final score:\s*(\d+)"),
)

TIMER_SELECTORS: tuple[str, ...] = (
    "#game .left",
    "span.left",
    "#game span:first-child",
    "body > div:nth-child(2) > span:first-child",
)
SELECTOR_TIMER_PATTERN = re.compile(r"Seconds left:\s*(\d+)", re.IGNORECASE)
FALLBACK_TIMER_PATTERNS: tuple[re.Pattern[str], ...] = (
    SELECTOR_TIMER_PATTERN,
    re.compile(r"Time:\s*(\d+)", re.IGNORECASE),
    re.compile(r"(\d+)\s*seconds", re.IGNORECASE),
    re.compile(r"(\d{1,2}):(\d{2})"),
)
FALLBACK_TEXT_MAX_LENGTH = 100
TIMER_MIN_SECONDS = 0
TIMER_MAX_SECONDS = 300

OPERATION_SYMBOLS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("addition", ("+",)),
    ("subtraction", ("-",)),
    ("multiplication", ("×", "*")),
    ("division", ("÷", "/")),
)
OPERATION_UNKNOWN = "unknown"

ANSWER_INPUT_TYPES: tuple[str, ...] = ("text", "number")


def operation_type(question: str) -> str:
    for name, symbols in OPERATION_SYMBOLS:
        if any(symbol in question for symbol in symbols):
            return name
    return OPERATION_UNKNOWN


def extract_problem(snapshot: DocumentSnapshot) -> str | None:
    for node in snapshot.nodes:
        text = node.text.strip()
        if not text:
            continue
        match = PROBLEM_PATTERN.search(text)
        if match is None:
            continue
        problem = " ".join(match.group(1).split())
        if len(problem) < PROBLEM_MAX_LENGTH and node.height > 0:
            return problem
    return None


def _match_score(text: str) -> int | None:
    for pattern in SCORE_PATTERNS:
        match = pattern.search(text)
        if match is not None:
            return int(match.group(1))
    return None


def extract_score(snapshot: DocumentSnapshot) -> int | None:
    best: int | None = None
    for node in snapshot.nodes:
        text = node.text.strip()
        if not text:
            continue
        score = _match_score(text)
        if score is not None and (best is None or score > best):
            best = score
    return best


def _parse_timer_match(match: re.Match[str]) -> int:
    if match.lastindex is not None and match.lastindex >= 2:
        return int(match.group(1)) * 60 + int(match.group(2))
    return int(match.group(1))


def _countdown_from_selectors(snapshot: DocumentSnapshot) -> int | None:
    for selector in TIMER_SELECTORS:
        text = snapshot.selector_texts.get(selector, "").strip()
        if not text:
            continue
        match = SELECTOR_TIMER_PATTERN.search(text)
        if match is not None:
            return int(match.group(1))
    return None


def _countdown_from_text(snapshot: DocumentSnapshot) -> int | None:
    for node in snapshot.nodes:
        text = node.text.strip()
        if not text or len(text) >= FALLBACK_TEXT_MAX_LENGTH:
            continue
        for pattern in FALLBACK_TIMER_PATTERNS:
            match = pattern.search(text)
            if match is None:
                continue
            seconds = _parse_timer_match(match)
            if TIMER_MIN_SECONDS <= seconds <= TIMER_MAX_SECONDS:
                return seconds
            logger.debug("countdown_value_out_of_range", seconds=seconds, text=text)
            break
    return None


def extract_countdown(snapshot: DocumentSnapshot) -> int | None:
    seconds = _countdown_from_selectors(snapshot)
    if seconds is not None:
        return seconds
    return _countdown_from_text(snapshot)


def _pick_answer_input(inputs: tuple[InputField, ...]) -> InputField | None:
    for input_type in ANSWER_INPUT_TYPES:
        for field in inputs:
            if field.type == input_type:
                return field
    if inputs:
        return inputs[0]
    return None


def extract_answer(snapshot: DocumentSnapshot) -> str | None:
    field = _pick_answer_input(snapshot.inputs)
    if field is None:
        return None
    return field.value.strip()
