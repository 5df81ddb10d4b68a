"""
Prompt construction for the relay.

`build_prompt` turns a chat payload into the system instructions and the user
input block for the completion API. It is a pure function of the payload.
"""
import json
import math
from dataclasses import dataclass
from typing import Any


MAX_HISTORY_TURNS = 12
DEFAULT_MAX_LENGTH = 650
MIN_MAX_LENGTH = 180
MAX_MAX_LENGTH = 1200

DEFAULT_SYSTEM = {
    "sv": "Du är en personlig träningscoach. Svara som en människa, tydligt och konkret, med fokus på progression.",
    "en": "You are a personal training coach. Respond like a human, clear and concrete, focused on progression.",
}

BASE_RULES = {
    "sv": [
        "Använd endast data från contextSummary/context/recentHistory.",
        "Om coachProfile finns: använd det som mjuk kontext, inte som ett hårt krav.",
        "Anta inte att coachProfile betyder exklusivt fokus på en övningstyp.",
        "Om data saknas, säg det tydligt istället för att gissa.",
        "Följdfrågor ska kännas som en tydlig fortsättning på samtalet.",
        "Använd 0-2 datapunkter från användarens data endast när de är direkt relevanta för frågan.",
        'Tolka "mest loggad övning" som observerad historik, inte som användarens preferens eller favorit om det inte uttryckligen står.',
        "Om frågan är generell, håll svaret generellt och ge breda alternativ istället för att låsa till en enskild övning.",
        "Nämn inte en specifik övning om användaren inte själv har nämnt den, om det inte är nödvändigt för att svara korrekt.",
        "Hitta inte på preferenser (t.ex. favoritdag, övningsfokus, saker att undvika). Om det inte explicit finns i relevant coachProfile för frågan: nämn det inte.",
        'Skriv inte påståenden som "du föredrar X", "du tränar helst på Y" eller "du undviker Z" om det inte står explicit i requestens relevanta kontext.',
        "Om användaren vill ha råd/plan: ge 2-4 konkreta nästa steg.",
        "Första meningen ska alltid svara direkt på användarens exakta fråga.",
        "Svara i samma intention som frågan: fråga om plan => ge plan, fråga om förklaring => förklara, fråga om jämförelse => jämför.",
        "Om användaren ställer en öppen fråga, ge ett öppet men relevant svar med 2-3 alternativ istället för ett låst standardupplägg.",
        "Håll dig till det användaren frågar om; byt inte ämne och lägg inte till irrelevanta sidospår.",
        "Undvik att börja med allmän bakgrund eller svepande formuleringar.",
        'Börja inte svaret med fraser som "Bra fråga", "Toppen", eller "Vi håller det enkelt".',
        "Variera meningsstart mellan svar och undvik samma inledningsfraser i flera svar i rad.",
        "Om frågan är kort/öppen: ställ exakt en klargörande följdfråga i slutet.",
        "Undvik generiska standardsvar.",
    ],
    "en": [
        "Use only data from contextSummary/context/recentHistory.",
        "If coachProfile is present, use it as soft context, not a hard constraint.",
        "Do not assume coachProfile means exclusive focus on one exercise type.",
        "If data is missing, say so instead of guessing.",
        "Follow-ups should feel like a clear continuation of the conversation.",
        "Use 0-2 data points from user data only when they are directly relevant to the question.",
        'Treat "most logged exercise" as observed history, not user preference/favorite unless explicitly stated.',
        "If the question is general, keep the answer general and provide broad options instead of locking onto one exercise.",
        "Do not mention a specific exercise unless the user mentioned it, unless it is necessary to answer correctly.",
        "Do not invent preferences (e.g. favorite day, exercise focus, things to avoid). If it is not explicitly present in relevant coachProfile for the question: do not mention it.",
        'Do not write claims like "you prefer X", "you mainly train on Y", or "you avoid Z" unless explicitly present in relevant request context.',
        "If user asks for advice/plan: provide 2-4 concrete next steps.",
        "The first sentence must directly answer the user's exact question.",
        "Match the user intent: if they ask for a plan => provide a plan, if explanation => explain, if comparison => compare.",
        "If the user asks an open question, provide an open but relevant answer with 2-3 options instead of one rigid template.",
        "Stay on the user's asked topic; do not switch topics or add irrelevant side tracks.",
        "Avoid opening with generic background statements.",
        'Do not start with phrases like "Great question", "Nice", or "Let\'s keep it simple".',
        "Vary sentence openings across responses and avoid repeating the same intro phrasing.",
        "If the question is short/ambiguous: ask exactly one clarifying question at the end.",
        "Avoid generic boilerplate.",
    ],
}

STRICT_RULE = {
    "sv": "Svara ultra-koncist: max 3 korta stycken och inga irrelevanta tillägg.",
    "en": "Reply ultra-concisely: max 3 short paragraphs and no irrelevant additions.",
}
FORCE_DIRECT_RULE = {
    "sv": "Använd exakt första meningen till att direkt besvara användarens fråga utan inledning.",
    "en": "Use the very first sentence to directly answer the user question without preamble.",
}
REVISION_RULE = {
    "sv": "Du reviderar ett tidigare svar som inte träffade frågan. Svara annorlunda och mer direkt än tidigare, återanvänd inte samma formuleringar.",
    "en": "You are revising a previous answer that missed the question. Answer differently and more directly, do not reuse the same phrasing.",
}
NO_REPEAT_RULE = {
    "sv": "Undvik att upprepa formuleringar från föregående AI-svar om inte användaren uttryckligen ber om repetition.",
    "en": "Avoid repeating phrasing from the previous AI answer unless the user explicitly asks for repetition.",
}


@dataclass
class Prompt:
    instructions: str
    input: str


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _object(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def normalize_history(history: Any) -> list[dict]:
    """Last 12 well-formed turns, trimmed, empty ones dropped."""
    if not isinstance(history, list):
        return []
    valid = [
        item for item in history
        if isinstance(item, dict)
        and item.get("role") in ("user", "assistant")
        and isinstance(item.get("text"), str)
    ]
    turns = [{"role": item["role"], "text": item["text"].strip()} for item in valid[-MAX_HISTORY_TURNS:]]
    return [turn for turn in turns if turn["text"]]


def clamp_max_length(value: Any) -> int:
    if isinstance(value, bool):
        return DEFAULT_MAX_LENGTH
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_MAX_LENGTH
    if not math.isfinite(number) or number <= 0:
        return DEFAULT_MAX_LENGTH
    clamped = min(float(MAX_MAX_LENGTH), max(float(MIN_MAX_LENGTH), number))
    return int(clamped) if clamped.is_integer() else clamped


def _style_guide(lang: str, tone: str, structure: str, max_length) -> str:
    if lang == "sv":
        lines = [
            "Svarsstil:",
            f"- ton: {tone}",
            f"- struktur: {structure}",
            f"- max längd: cirka {max_length} tecken",
            "- håll svaret kompakt men personligt",
            "- inga markdown-rubriker",
        ]
    else:
        lines = [
            "Response style:",
            f"- tone: {tone}",
            f"- structure: {structure}",
            f"- max length: around {max_length} chars",
            "- keep it compact but personal",
            "- no markdown headings",
        ]
    return "\n".join(lines)


def build_prompt(payload: dict) -> Prompt:
    """Build the instructions and input blocks for one chat payload."""
    payload = _object(payload)
    lang = "en" if payload.get("lang") == "en" else "sv"
    summary = _object(payload.get("contextSummary"))
    coach_profile = _object(payload.get("coachProfile"))
    history = normalize_history(payload.get("history"))
    message = _text(payload.get("message"))

    style = _object(payload.get("responseStyle"))
    tone = style["tone"] if isinstance(style.get("tone"), str) else "coach"
    structure = style["structure"] if isinstance(style.get("structure"), str) else "adaptive-status-steps"
    strict = style.get("strictMode") == "strict"
    force_direct = bool(style.get("forceDirect"))
    revise_reason = _text(style.get("reviseReason"))
    previous_answer = _text(payload.get("previousAnswer"))
    previous_assistant = _text(payload.get("previousAssistantReply"))
    max_length = clamp_max_length(style.get("maxLength"))

    system = _text(payload.get("systemPrompt")) or DEFAULT_SYSTEM[lang]

    rules = list(BASE_RULES[lang])
    if strict:
        rules.append(STRICT_RULE[lang])
    if force_direct:
        rules.append(FORCE_DIRECT_RULE[lang])
    if previous_answer:
        rules.append(REVISION_RULE[lang])
    if previous_assistant:
        rules.append(NO_REPEAT_RULE[lang])

    numbered = "\n".join(f"{index}. {rule}" for index, rule in enumerate(rules, start=1))
    instructions = f"{system}\n\n{numbered}\n\n{_style_guide(lang, tone, structure, max_length)}"

    parts = [
        f"language: {lang}",
        f"contextSummary: {_dump(summary)}",
        f"coachProfile: {_dump(coach_profile)}",
        f"recentHistory: {_dump(history)}",
        f"userMessage: {message}",
    ]
    if previous_answer:
        parts.append(f"previousAnswerToImprove: {previous_answer}")
    if previous_assistant:
        parts.append(f"previousAssistantReply: {previous_assistant}")
    if revise_reason:
        parts.append(f"revisionReason: {revise_reason}")

    return Prompt(instructions=instructions, input="\n\n".join(parts))
