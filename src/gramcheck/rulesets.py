"""Built-in rule sets and misspelling maps (English, Spanish)."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from .rules import DictionaryRule, PatternRule, RuleSet

EN_MISSPELLINGS: Mapping[str, str] = MappingProxyType(
    {
        "recieve": "receive",
        "wierd": "weird",
        "definately": "definitely",
        "seperate": "separate",
        "occured": "occurred",
        "untill": "until",
        "begining": "beginning",
        "accomodate": "accommodate",
        "foriegn": "foreign",
        "goverment": "government",
        "similiar": "similar",
        "tommorrow": "tomorrow",
    }
)

# Only unambiguous tokens: "esta"/"este" are valid words without the accent.
ES_MISSING_ACCENTS: Mapping[str, str] = MappingProxyType(
    {
        "gramatica": "gramática",
        "ultimo": "último",
        "exito": "éxito",
        "tambien": "también",
        "aqui": "aquí",
        "alli": "allí",
        "facil": "fácil",
        "dificil": "difícil",
        "dia": "día",
        "telefono": "teléfono",
        "cafe": "café",
        "numero": "número",
        "musica": "música",
        "rapido": "rápido",
        "codigo": "código",
        "metodo": "método",
        "asi": "así",
        "ademas": "además",
    }
)

ENGLISH_RULES: RuleSet = (
    PatternRule(
        name="your_youre",
        pattern=r"\b(your)\s+(welcome|right|going|kidding|joking|trying|looking|talking|leaving|staying|tired|sure|correct|done|finished|invited)\b",
        replacement="you're",
        message='Possible error: "your" should be "you\'re" (contraction of "you are")',
    ),
    PatternRule(
        name="its_its",
        pattern=r"\b(its)\s+(a|an|the|going|not|because|important|time|necessary|possible)\b",
        replacement="it's",
        message='Possible error: "its" should be "it\'s" (contraction of "it is")',
    ),
    PatternRule(
        name="their_theyre",
        pattern=r"\b(their)\s+(going|coming|trying|looking|talking|leaving|staying|waiting)\b",
        replacement="they're",
        message='Possible error: "their" should be "they\'re" (contraction of "they are")',
    ),
    PatternRule(
        name="then_than",
        pattern=r"\b(is|are|seem|looks|get|become)\s+(more|less|better|worse|bigger|smaller)\s+(then)\b",
        group_to_replace=3,
        replacement="than",
        message='Possible error: "then" should be "than" (comparison)',
    ),
    DictionaryRule(name="common_misspellings", words=EN_MISSPELLINGS, message="Spelling error"),
)

SPANISH_RULES: RuleSet = (
    PatternRule(
        name="hay_ahi_ay",
        pattern=r"\b(hay)\s+(está|aquí|allí|allá|arriba|abajo|adentro|afuera|cerca|lejos|adelante|atrás)\b",
        replacement="ahí",
        message='Posible confusión: "hay" (existencia) debe ser "ahí" (lugar)',
    ),
    PatternRule(
        name="a_ha_ah",
        pattern=r"\b(a)\s+(sido|estado|terminado|comenzado|empezado|llegado|venido|ido|hecho|dicho)\b",
        replacement="ha",
        message='Posible confusión: "a" (preposición) debe ser "ha" (verbo haber)',
    ),
    PatternRule(
        name="haber_a_ver",
        pattern=r"\b(haber)\s+(si|qué|cómo|dónde|cuándo|cuánto|quién)\b",
        replacement="a ver",
        message='Posible confusión: "haber" (verbo) debe ser "a ver" (preposición + verbo)',
    ),
    DictionaryRule(name="sin_acento", words=ES_MISSING_ACCENTS, message="Falta tilde"),
)

# Closed stop-word lists used by the language-detection fallback.
STOPWORDS: Mapping[str, frozenset[str]] = MappingProxyType(
    {
        "en": frozenset({"the", "a", "an", "of", "in", "on", "with", "is", "are", "were"}),
        "es": frozenset({"el", "la", "los", "las", "de", "en", "con", "por", "que", "es", "son"}),
    }
)


def default_rule_sets() -> Mapping[str, RuleSet]:
    return MappingProxyType({"en": ENGLISH_RULES, "es": SPANISH_RULES})
