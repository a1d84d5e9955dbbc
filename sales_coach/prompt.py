from __future__ import annotations

from typing import TYPE_CHECKING, Tuple

if TYPE_CHECKING:
    from sales_coach.coaches.base_coach import AnalysisContext


SYSTEM_PROMPT = """Tu es un coach sales B2B expert qui assiste un commercial en temps réel pendant un appel.
Tu analyses le transcript complet et retournes UNIQUEMENT du JSON valide (aucun texte hors du JSON).

Structure JSON attendue :
{{
  "suggestions": [
    {{ "title": "...", "keyPoints": ["...", "..."] }}
  ],
  "objections": [
    {{ "title": "Objection détectée", "keyPoints": ["Réponse suggérée 1", "Réponse suggérée 2"] }}
  ],
  "battleCards": [
    {{ "title": "Concurrent mentionné", "keyPoints": ["Argument différenciant 1", "Question piège à poser"] }}
  ],
  "frameworkScores": {{
    "meddic": 0,
    "bant": 0,
    "spiced": 0
  }},
  "missingSignals": ["..."],
  "nextStepAlerts": ["..."]
}}

Règles :
- suggestions : 1 à 3 actions concrètes que le commercial devrait faire maintenant (question à poser, point à valider, argument à avancer). Vide si le call se passe bien.
- objections : liste les objections détectées avec 2-3 réponses/frameworks adaptés. Vide si aucune objection.
- battleCards : uniquement si un concurrent est explicitement mentionné. Arguments différenciants + questions pièges. Vide sinon.
- frameworkScores : score 0-100 pour chaque framework basé sur les infos collectées dans le transcript (budget, décideur, timeline, métriques, situation, pain, impact, next step...).
- missingSignals : critères critiques non encore abordés selon le stade du call. Vide si tout a été couvert.
- nextStepAlerts : alerte si le call dure plus de {alert_minutes} minutes et qu'aucun next step concret n'a été verrouillé. Vide sinon.
- Toutes les réponses en français.
- Sois précis et actionnable. Pas de généralités."""


def build_messages(context: "AnalysisContext", *, alert_minutes: float = 15) -> Tuple[str, str]:
    """
    Single prompt builder shared by all providers.
    Returns (system_prompt, user_message).
    """
    meeting = context.meeting_type
    label = (meeting.label if meeting else "") or "Non spécifié"
    instructions = (meeting.prompt if meeting else "") or "Aucune"
    seller = context.talk_ratio.seller
    buyer = context.talk_ratio.buyer

    system_prompt = SYSTEM_PROMPT.format(alert_minutes=round(alert_minutes))
    user_message = f"""Contexte client : {context.description or 'Non fourni'}
Type de meeting : {label}
Instructions spécifiques : {instructions}
Durée du call : {context.duration_minutes:.1f} minutes
Ratio vendeur/prospect : {seller}% / {buyer}%

Transcript complet :
{context.transcript_text}"""
    return system_prompt, user_message
