"""Rule-based coach: keyword scans over the recent transcript.

Always available and deterministic. Used whenever the language model is not
configured, cooling down, or failed to return something usable.
"""

import re
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

from sales_coach.coaches.base_coach import AnalysisContext, BaseCoach
from sales_coach.schema import FrameworkScores, InsightBundle, InsightCard, round_half_up


PRICE_OBJECTION_KEYWORDS = (
    "trop cher", "c'est cher", "coûte cher", "hors budget", "pas le budget",
    "prix élevé", "trop élevé", "too expensive", "expensive", "over budget",
    "too pricey", "costs too much",
)

CURRENT_TOOL_KEYWORDS = (
    "on utilise déjà", "nous utilisons déjà", "on a déjà un outil",
    "on a déjà une solution", "notre outil actuel", "notre solution actuelle",
    "already use", "already using", "we already have", "current tool",
    "current solution",
)

COMPETITORS = (
    "salesforce", "hubspot", "pipedrive", "gong", "chorus", "outreach",
    "salesloft", "zoho", "modjo", "aircall", "ringover",
)

DECISION_MAKER_KEYWORDS = (
    "décideur*", "decideur*", "decision maker", "decision-maker", "directeur",
    "direction", "cfo", "ceo", "economic buyer", "qui signe", "who signs",
)

NEXT_STEP_KEYWORDS = (
    "prochaine étape", "next step", "rendez-vous", "rdv", "démo", "demo",
    "relance", "follow-up", "follow up", "on se revoit", "on se recale",
    "semaine prochaine", "next week", "lundi", "mardi", "mercredi", "jeudi",
    "vendredi", "monday", "tuesday", "wednesday", "thursday", "friday",
    "calendrier", "calendar", "invitation",
)

# Each signal is a group of synonyms; finding any of them counts the signal once.
# "stem*" entries match a word prefix.
PAIN_SIGNAL = ("problème*", "douleur*", "difficulté*", "frustr*", "pain", "problem*", "struggl*")
TIMELINE_SIGNAL = ("délai*", "échéance*", "deadline*", "timeline*", "d'ici", "trimestre*", "quarter*")

FRAMEWORK_SIGNALS: Dict[str, Tuple[Tuple[str, ...], ...]] = {
    "meddic": (
        ("kpi*", "métrique*", "metric*", "roi", "indicateur*"),
        DECISION_MAKER_KEYWORDS,
        ("critère*", "criteria", "exigence*", "requirement*"),
        ("processus de décision", "process de décision", "validation", "decision process", "approval"),
        PAIN_SIGNAL,
        ("champion", "sponsor", "porteur du projet"),
    ),
    "bant": (
        ("budget*",),
        DECISION_MAKER_KEYWORDS,
        ("besoin*", "need*"),
        TIMELINE_SIGNAL,
    ),
    "spiced": (
        ("situation", "actuellement", "aujourd'hui", "currently", "today"),
        PAIN_SIGNAL,
        ("impact*", "conséquence*", "perte*", "coût*", "cost*"),
        ("échéance*", "deadline*", "date limite", "critical event", "événement*"),
        ("décision*", "decision*", "décid*", "decid*"),
    ),
}

GENERIC_SUGGESTION = InsightCard(
    title="Question de qualification",
    key_points=[
        "Qui d'autre est impliqué dans la décision ?",
        "Quel budget est prévu pour ce projet ?",
        "Quel est votre calendrier de mise en place ?",
    ],
)


@lru_cache(maxsize=None)
def _keyword_re(keyword: str) -> Pattern[str]:
    # "stem*" matches any word starting with stem
    if keyword.endswith("*"):
        return re.compile(rf"\b{re.escape(keyword[:-1])}")
    return re.compile(rf"\b{re.escape(keyword)}\b")


def contains_keyword(text: str, keyword: str) -> bool:
    """Whole-word match for single words, substring match for phrases."""
    if " " in keyword or "'" in keyword:
        return keyword in text
    return _keyword_re(keyword).search(text) is not None


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(contains_keyword(text, k) for k in keywords)


def _find_competitor(text: str) -> Optional[str]:
    for name in COMPETITORS:
        if contains_keyword(text, name):
            return name
    return None


def framework_score(text: str, signals: Sequence[Tuple[str, ...]]) -> int:
    if not signals:
        return 0
    found = sum(1 for group in signals if _contains_any(text, group))
    return round_half_up(found / len(signals) * 100)


class HeuristicCoach(BaseCoach):
    """Keyword/rule based insight generator."""

    name = "heuristic"

    def __init__(self, next_step_alert_minutes: Optional[float] = None):
        from sales_coach.config import Config
        if next_step_alert_minutes is None:
            next_step_alert_minutes = Config.NEXT_STEP_ALERT_MINUTES
        self.next_step_alert_minutes = next_step_alert_minutes

    async def generate_insights(self, context: AnalysisContext) -> InsightBundle:
        return self.analyze(context)

    def analyze(self, context: AnalysisContext) -> InsightBundle:
        text = context.recent_text.lower().replace("’", "'")

        suggestions: List[InsightCard] = []
        objections: List[InsightCard] = []
        battle_cards: List[InsightCard] = []
        missing_signals: List[str] = []
        next_step_alerts: List[str] = []

        if _contains_any(text, PRICE_OBJECTION_KEYWORDS):
            objections.append(InsightCard(
                title="Objection prix",
                key_points=[
                    "Reformulez : « Cher par rapport à quoi ? »",
                    "Ramenez la discussion sur le coût du problème actuel",
                    "Proposez un phasage ou un périmètre réduit plutôt qu'une remise",
                ],
            ))
            suggestions.append(InsightCard(
                title="Recadrer sur la valeur",
                key_points=[
                    "Chiffrez avec le prospect l'impact du problème (temps, revenu perdu)",
                    "Comparez ce coût au prix de la solution",
                ],
            ))

        if _contains_any(text, CURRENT_TOOL_KEYWORDS):
            objections.append(InsightCard(
                title="Outil déjà en place",
                key_points=[
                    "Demandez ce qui fonctionne et ce qui manque dans l'outil actuel",
                    "Faites émerger le coût caché du statu quo",
                    "Positionnez-vous en complément avant de parler de remplacement",
                ],
            ))

        competitor = _find_competitor(text)
        if competitor:
            label = competitor.capitalize()
            battle_cards.append(InsightCard(
                title=f"Concurrent mentionné : {label}",
                key_points=[
                    f"Demandez ce qui a motivé l'évaluation de {label}",
                    "Mettez en avant vos différenciateurs sur le cas d'usage du prospect",
                    f"Question piège : « Comment mesurez-vous le ROI avec {label} aujourd'hui ? »",
                ],
            ))

        scores = FrameworkScores(
            meddic=framework_score(text, FRAMEWORK_SIGNALS["meddic"]),
            bant=framework_score(text, FRAMEWORK_SIGNALS["bant"]),
            spiced=framework_score(text, FRAMEWORK_SIGNALS["spiced"]),
        )

        if not _contains_any(text, DECISION_MAKER_KEYWORDS):
            missing_signals.append("Décideur non identifié")
        if not contains_keyword(text, "budget*"):
            missing_signals.append("Budget non qualifié")

        if (
            context.duration_minutes > self.next_step_alert_minutes
            and not _contains_any(text, NEXT_STEP_KEYWORDS)
        ):
            next_step_alerts.append(
                f"Appel de plus de {round_half_up(self.next_step_alert_minutes)} minutes "
                "sans next step verrouillé : proposez une date de suivi."
            )

        if not suggestions:
            suggestions.append(GENERIC_SUGGESTION)

        return InsightBundle(
            suggestions=suggestions,
            objections=objections,
            battle_cards=battle_cards,
            framework_scores=scores,
            missing_signals=missing_signals,
            next_step_alerts=next_step_alerts,
        )
