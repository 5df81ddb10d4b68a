"""
Local reply engine.

Builds a coaching answer from the classified intent and the metrics summary
without any network access. Every sentence is a fixed template in Swedish or
English filled only with names and numbers taken from the summary, so the
engine can never claim a preference or restriction the user did not record.
"""
from typing import Optional

from .intent import contains_any
from .models import Intent, MetricsSummary, normalize_lang


AVG_MINUTES_THRESHOLD = 35

MUSCLE_NAMES_SV = {
    "Chest": "Bröst",
    "Back": "Rygg",
    "Legs": "Ben",
    "Shoulders": "Axlar",
    "Arms": "Armar",
}


def _t(lang: str, sv: str, en: str) -> str:
    return sv if lang == "sv" else en


def format_number(value: float) -> str:
    """Render 80.0 as "80" and 82.5 as "82.5"."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def format_steps(items: list[str]) -> str:
    return "\n".join(f"{index}. {item}" for index, item in enumerate(items, start=1))


def localize_muscle(muscle: str, lang: str) -> str:
    if lang == "en":
        return muscle
    return MUSCLE_NAMES_SV.get(muscle, "Övrigt")


def no_data_message(lang: str) -> str:
    return _t(
        lang,
        "Jag hittar inga genomförda pass ännu. Kör ett snabbpass med set/reps/vikt så kan jag ge riktigt relevanta råd.",
        "I cannot find any completed workouts yet. Log one session with sets/reps/weight and I can give truly relevant advice.",
    )


def empty_message_reply(lang: str, tone: str) -> str:
    """Answer for a blank chat message; no data or network involved."""
    if tone == "direct":
        return _t(
            lang,
            "Skriv din fråga direkt så ger jag en konkret plan.",
            "Ask your question directly and I will give a concrete plan.",
        )
    return _t(
        lang,
        "Skriv en fråga så hjälper jag dig med en tydlig plan.",
        "Ask a question and I will help with a clear plan.",
    )


def _next_reply(lang: str, summary: MetricsSummary) -> str:
    top = summary.top_exercises[0] if summary.top_exercises else None
    second = summary.top_exercises[1] if len(summary.top_exercises) > 1 else None
    rested = summary.days_since_last is not None and summary.days_since_last >= 2

    if summary.weekly_goal > 0:
        goal_part = _t(lang, f", {summary.weekly_left} kvar till veckomålet", f", {summary.weekly_left} left to weekly goal")
    else:
        goal_part = ""
    status = _t(
        lang,
        f"Läge: {summary.sessions7} pass senaste 7 dagar{goal_part}.",
        f"Status: {summary.sessions7} sessions in the last 7 days{goal_part}.",
    )
    steps = [
        _t(lang, f"Bygg passet runt {top.name} (2-4 arbetsset).", f"Build the session around {top.name} (2-4 working sets).")
        if top else
        _t(lang, "Välj en huvudövning (2-4 arbetsset).", "Pick one main lift (2-4 working sets)."),
        _t(lang, f"Lägg in {second.name} som huvudkomplement.", f"Add {second.name} as the main supporting lift.")
        if second else
        _t(lang, "Lägg in en kompletterande drag- eller pressövning.", "Add one supporting pull or push exercise."),
        _t(lang, "Kör normal/tung intensitet idag och sikta på liten progression.",
           "Run normal/heavy intensity today and aim for small progression.")
        if rested else
        _t(lang, "Kör medelintensitet idag och prioritera teknik + jämn kvalitet på seten.",
           "Use moderate intensity today and prioritize technique + consistent set quality."),
    ]
    return f"{status}\n{_t(lang, 'Nästa steg:', 'Next steps:')}\n{format_steps(steps)}"


def _pb_reply(lang: str, summary: MetricsSummary) -> str:
    top = summary.top_exercises[0] if summary.top_exercises else None
    pb = summary.latest_pb

    if pb:
        detail = f"{pb.exercise} {format_number(pb.weight)} kg ({pb.date}, +{pb.delta:.1f} kg)."
        status = _t(lang, f"Senaste PB: {detail}", f"Latest PR: {detail}")
    else:
        status = _t(lang, "Inga nya PB senaste 30 dagar.", "No new PR in the last 30 days.")

    steps = [
        _t(lang, f"Behåll hög frekvens i {top.name} (du svarar bra där).",
           f"Keep high frequency on {top.name} (you respond well there).")
        if top else
        _t(lang, "Välj en huvudövning och följ den 2-3 pass i rad.", "Pick one main lift and repeat it for 2-3 sessions."),
        _t(lang, "Mål nästa pass: +1 rep på tyngsta setet eller +1.25 till +2.5 kg med samma reps.",
           "Next target: +1 rep on your heaviest set or +1.25 to +2.5 kg at same reps."),
        _t(lang, "Stoppa när teknik tappar, annars blir progressionen svårare att upprepa.",
           "Stop when technique breaks down, otherwise progression is harder to repeat."),
    ]
    return f"{status}\n{_t(lang, 'PB-plan:', 'PR plan:')}\n{format_steps(steps)}"


def _volume_reply(lang: str, summary: MetricsSummary) -> str:
    third = summary.top_exercises[2] if len(summary.top_exercises) > 2 else None
    status = _t(
        lang,
        f"Volym 7 dagar: {summary.volume7}, tid {summary.minutes7} min, snitt {summary.avg_minutes7} min/pass.",
        f"7-day volume: {summary.volume7}, time {summary.minutes7} min, average {summary.avg_minutes7} min/session.",
    )
    steps = [
        _t(lang, "Öka med 1 arbetsset i huvudövningen för mer träningsstimuli.",
           "Add 1 working set to the main lift for more training stimulus.")
        if summary.avg_minutes7 < AVG_MINUTES_THRESHOLD else
        _t(lang, "Behåll nuvarande volym om återhämtning känns bra.", "Keep current volume if recovery feels good."),
        _t(lang, f"Prioritera kvalitet i {third.name} istället för fler övningar.",
           f"Prioritize quality in {third.name} instead of adding more exercises.")
        if third else
        _t(lang, "Prioritera kvalitet i befintliga övningar före fler övningar.",
           "Prioritize quality in current exercises before adding more exercises."),
        _t(lang, "Utvärdera efter 2 veckor: bättre reps, vikt eller teknik = rätt nivå.",
           "Review after 2 weeks: better reps, load, or technique means the level is right."),
    ]
    return f"{status}\n{_t(lang, 'Volymjustering:', 'Volume adjustment:')}\n{format_steps(steps)}"


def _balance_reply(lang: str, summary: MetricsSummary) -> str:
    top = summary.top_exercises[0] if summary.top_exercises else None
    muscle = localize_muscle(summary.muscle_focus_tip, lang) if summary.muscle_focus_tip else None

    top_name = top.name if top else _t(lang, "okänt", "unknown")
    status = _t(lang, f"Mest tränat nu: {top_name}.", f"Most trained now: {top_name}.")
    if muscle:
        status += _t(lang, f" Lägst frekvens: {muscle}.", f" Lowest frequency: {muscle}.")

    steps = [
        _t(lang, f"Lägg till 1 extra övning för {muscle} i nästa två pass.",
           f"Add 1 extra exercise for {muscle} in your next two sessions.")
        if muscle else
        _t(lang, "Fortsätt nuvarande split och följ utvecklingen i 2 veckor.",
           "Keep your current split and monitor for 2 weeks."),
        _t(lang, f"Behåll {top.name} stabilt så du inte tappar huvudprogression.",
           f"Keep {top.name} stable so you do not lose main progression.")
        if top else
        _t(lang, "Behåll en tydlig huvudövning per pass.", "Keep one clear main lift each session."),
        _t(lang, "Målet är jämn veckobelastning, inte maxvolym på en muskelgrupp.",
           "The goal is balanced weekly load, not max volume on one muscle group."),
    ]
    return f"{status}\n{_t(lang, 'Balansplan:', 'Balance plan:')}\n{format_steps(steps)}"


def _overview_reply(lang: str, summary: MetricsSummary, message: str) -> str:
    top = summary.top_exercises[0] if summary.top_exercises else None
    lower = (message or "").lower()

    if contains_any(lower, ("varför", "why")) and top:
        return _t(
            lang,
            f"Du får rådet att fokusera på {top.name} eftersom den har högst frekvens i din data "
            f"({top.sessions} pass), vilket gör progressionen mer förutsägbar. Nästa steg: 1) håll samma "
            "upplägg i 2-3 pass, 2) öka reps eller vikt lite, 3) följ teknik och återhämtning.",
            f"I recommend focusing on {top.name} because it has the highest frequency in your data "
            f"({top.sessions} sessions), which makes progression more predictable. Next: 1) keep the same "
            "setup for 2-3 sessions, 2) increase reps or load slightly, 3) track technique and recovery.",
        )

    if contains_any(lower, ("kort", "short")):
        return _t(
            lang,
            f"Kort läge: {summary.sessions7} pass/7 dagar. Fokus nästa pass: "
            f"{top.name if top else 'en huvudövning'} och liten progression.",
            f"Short status: {summary.sessions7} sessions/7 days. Next focus: "
            f"{top.name if top else 'one main lift'} with small progression.",
        )

    last = summary.last_workout_date or _t(lang, "okänt", "unknown")
    if lang == "sv":
        recent = f" Mest loggad nyligen: {top.name}." if top else ""
        lift = top.name if top else "min huvudövning"
        return (
            f"Översikt: {summary.total_sessions} pass totalt, {summary.sessions7} senaste 7 dagar. "
            f"Senaste pass: {last}.{recent} "
            f'Skriv t.ex. "vad ska jag köra nästa pass?" eller "hur tar jag PB i {lift}?".'
        )
    recent = f" Most logged recently: {top.name}." if top else ""
    lift = top.name if top else "my main lift"
    return (
        f"Overview: {summary.total_sessions} sessions total, {summary.sessions7} in the last 7 days. "
        f"Last workout: {last}.{recent} "
        f'Ask for example "what should I train next?" or "how do I improve PR in {lift}?".'
    )


def synthesize(lang: str, intent: Intent, summary: MetricsSummary, message: str) -> str:
    """Compose the local coaching reply for an intent."""
    lang = normalize_lang(lang)
    if summary.total_sessions == 0:
        return no_data_message(lang)

    intent = Intent(intent)
    if intent is Intent.NEXT:
        return _next_reply(lang, summary)
    if intent is Intent.PB:
        return _pb_reply(lang, summary)
    if intent is Intent.VOLUME:
        return _volume_reply(lang, summary)
    if intent is Intent.BALANCE:
        return _balance_reply(lang, summary)
    return _overview_reply(lang, summary, message)


def workout_title(lang: str, intent: Intent, summary: MetricsSummary) -> str:
    """Short title for a workout built from this answer."""
    intent = Intent(intent)
    top: Optional[str] = summary.top_exercises[0].name if summary.top_exercises else None
    if intent is Intent.PB:
        if top:
            return _t(lang, f"PB-fokus: {top}", f"PR focus: {top}")
        return _t(lang, "PB-fokus pass", "PR focus workout")
    if intent is Intent.NEXT:
        if top:
            return _t(lang, f"Nästa pass: {top}", f"Next session: {top}")
        return _t(lang, "Nästa träningspass", "Next workout")
    if intent is Intent.VOLUME:
        return _t(lang, "Volymfokuserat pass", "Volume-focused workout")
    return _t(lang, "AI-planerat pass", "AI planned workout")


def basis_line(lang: str, summary: MetricsSummary) -> str:
    if lang == "sv":
        last = f", senaste pass {summary.last_workout_date}" if summary.last_workout_date else ""
        return f"Bygger på: {summary.sessions7} pass senaste 7 dagar{last}."
    last = f", last workout {summary.last_workout_date}" if summary.last_workout_date else ""
    return f"Based on: {summary.sessions7} sessions in last 7 days{last}."
