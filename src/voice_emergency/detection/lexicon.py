"""
Emergency keyword lexicon.

Per-category, per-language keyword and phrase lists for Nigerian English,
Pidgin, Yoruba, Hausa and Igbo, plus contextual phrases, generic urgency
words and emotional-tone word lists. The lexicon is built once and exposed
through read-only mappings of tuples; nothing mutates it at runtime.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

EMERGENCY_CATEGORIES = (
    "medical",
    "security",
    "fire",
    "domestic_violence",
    "legal",
    "accident",
)

_KEYWORDS = {
    "medical": {
        "english": [
            "help me", "emergency", "hospital", "doctor", "sick", "pain", "injury", "bleeding",
            "unconscious", "heart attack", "stroke", "accident", "ambulance", "dying", "breathe",
        ],
        "pidgin": [
            "help me", "emergency", "hospital", "dokita", "sick", "pain", "injury", "blood dey comot",
            "person don faint", "heart attack", "accident", "ambulance", "person dey die", "no fit breathe",
        ],
        "yoruba": [
            "egba mi", "emergency", "ile iwosan", "dokita", "aisan", "irora", "ipalara", "eje n jade",
            "ti daku", "ikun ti dun", "accident", "ambulance", "n ku", "ko le mi",
        ],
        "hausa": [
            "taimake ni", "emergency", "asibiti", "likita", "ciwo", "zafi", "rauni", "jini yana fitowa",
            "ya suma", "bugun zuciya", "accident", "ambulance", "yana mutuwa", "ba ya numfashi",
        ],
        "igbo": [
            "nyere m aka", "emergency", "ulo ogwu", "dibia", "oria", "ihe mgbu", "mmebi", "obara na apu",
            "adala", "nkuku obi", "accident", "ambulance", "na anwu", "enweghị iku ume",
        ],
    },
    "security": {
        "english": [
            "thief", "robbery", "stolen", "attack", "threat", "gun", "knife", "kidnap", "danger",
            "rape", "assault", "break in", "burglar", "armed robber", "help police",
        ],
        "pidgin": [
            "tiff", "robbery", "steal", "attack", "threat", "gun", "knife", "kidnap", "danger",
            "rape", "beat", "break house", "ole", "armed robber", "call police",
        ],
        "yoruba": [
            "ole", "ole ja mi", "ji mi", "kolu", "ihaleru", "ibon", "obe", "gbe mi lo", "ewu",
            "fi ipa ba", "wo ile", "ologun ole", "pe ologun",
        ],
        "hausa": [
            "barawo", "fashi", "sata", "hari", "barazana", "bindiga", "wuka", "sace", "hadari",
            "fyade", "duka", "shiga gida", "makami barawo", "kira yan sanda",
        ],
        "igbo": [
            "onye ohi", "ihi aka", "zuru", "wakpo", "egwu", "egbe", "mma", "toro", "ize ndụ",
            "mmetọ", "iti aka", "banye ulo", "onye ohi egbe", "kpoo ndi uwe ojii",
        ],
    },
    "fire": {
        "english": [
            "fire", "burning", "smoke", "flames", "explosion", "gas leak", "burning building",
            "fire brigade", "extinguisher", "evacuation", "trapped", "burn",
        ],
        "pidgin": [
            "fire", "dey burn", "smoke", "flame", "explosion", "gas leak", "house dey burn",
            "fire service", "fire extinguisher", "evacuation", "trap", "burn",
        ],
        "yoruba": [
            "ina", "n jo", "eefin", "bugbamu", "gas ti tu", "ile n jo",
            "elegbe ina", "epo ina", "sa jade", "di mo", "jo",
        ],
        "hausa": [
            "wuta", "yana kone", "hayaki", "fashewa", "gas ya fita", "gida yana kone",
            "ma kashe wuta", "kashe wuta", "ficewa", "makale", "kone",
        ],
        "igbo": [
            "oku", "na ere", "anwuru", "mgbawa", "gas gbapuru", "ulo na ere",
            "ndi mgba oku", "ihe mgba oku", "gbapuru", "kpuchiri", "gbaa",
        ],
    },
    "domestic_violence": {
        "english": [
            "abuse", "violence", "beating", "hurt", "threatened", "scared", "domestic violence",
            "hit me", "bruise", "family violence", "spouse abuse", "child abuse",
        ],
        "pidgin": [
            "abuse", "violence", "dey beat", "hurt", "threaten", "fear", "house violence",
            "hit me", "wound", "family violence", "husband abuse", "pikin abuse",
        ],
        "yoruba": [
            "iwa ika", "wahala", "na", "se mi lese", "haleru", "beru", "wahala ile",
            "na mi", "gbe", "wahala ebi", "oko na", "omo abuse",
        ],
        "hausa": [
            "zalunci", "tashin hankali", "duka", "cutar", "barazana", "tsoro", "tashin hankalin gida",
            "buga ni", "rauni", "tashin hankalin iyali", "miji zalunci", "yaro zalunci",
        ],
        "igbo": [
            "mmegbu", "ime ihe ike", "iti", "mebiri", "yi egwu", "ụjọ", "ime ihe ike uno",
            "tie m", "ọnya", "ime ihe ike ezinụlọ", "di mmegbu", "nwata mmegbu",
        ],
    },
    "legal": {
        "english": [
            "arrest", "police", "court", "lawyer needed", "legal help", "detained", "warrant",
            "rights violated", "false accusation", "urgent legal", "bail", "custody",
        ],
        "pidgin": [
            "arrest", "police", "court", "need lawyer", "legal help", "detain", "warrant",
            "rights violate", "false accusation", "urgent legal", "bail", "custody",
        ],
        "yoruba": [
            "mu", "ologun", "ile ejo", "gbodo lawyer", "iranlowo legal", "fa mo", "iwe ase",
            "eto ti ru", "ebi eke", "kiakia legal", "bail", "asotito",
        ],
        "hausa": [
            "kama", "yan sanda", "kotu", "bukatar lauya", "taimakon shari'a", "tsare", "sammaci",
            "hakki sun karya", "zarge karya", "gaggawan shari'a", "beli", "hannun shari'a",
        ],
        "igbo": [
            "jide", "ndi uwe ojii", "ụlọ ikpe", "chọrọ ọkàikpe", "enyemaka iwu", "jigide", "akwụkwọ ikpe",
            "ikike mebiri", "ebubo ụgha", "iwu ngwa ngwa", "mgbapụta", "njigide",
        ],
    },
    "accident": {
        "english": [
            "car crash", "crash", "collision", "knocked down", "hit by a car", "run over",
            "overturned", "road accident", "motorcycle accident", "pile up",
        ],
        "pidgin": [
            "motor jam", "okada jam", "car jam", "crash", "motor don jam", "jam person",
            "road accident", "motor somersault",
        ],
        "yoruba": [
            "ijamba", "oko kolu", "oko gba", "ijamba oko", "oko yi pada", "okada gba",
        ],
        "hausa": [
            "hatsari", "hatsarin mota", "mota ta buge", "mota ta kife", "karo",
        ],
        "igbo": [
            "ihe mberede", "ugbo ala kụrụ", "ugbo ala tụgharịrị", "okada kụrụ", "nkukota",
        ],
    },
}

# Phrases whose co-occurrence strengthens a category match
_CONTEXT = {
    "medical": ["call ambulance", "need doctor", "hospital", "pain level", "can't breathe"],
    "security": ["call police", "stolen", "threatened", "dangerous", "escape"],
    "fire": ["fire department", "evacuate", "smoke", "burning smell", "get out"],
    "domestic_violence": ["hurt me", "scared", "hiding", "won't stop", "safe place"],
    "legal": ["arrested", "detained", "rights", "lawyer", "police station"],
    "accident": ["crashed", "hit", "collision", "injured", "call help"],
}

_URGENCY_WORDS = [
    "now", "immediately", "urgent", "quickly", "fast", "hurry", "emergency",
    "please", "help", "asap", "right away", "can't wait",
]

_PANIC_WORDS = ["help", "emergency", "please", "hurry", "dying", "can't"]
_STRESS_WORDS = ["worried", "concerned", "trouble", "problem", "difficult"]
_ANGER_WORDS = ["angry", "furious", "mad", "hate", "terrible", "awful"]


def _unique(words) -> tuple[str, ...]:
    """Lower-case and de-duplicate while keeping first-seen order."""
    return tuple(dict.fromkeys(w.lower() for w in words))


@dataclass(frozen=True)
class Lexicon:
    """Immutable keyword configuration shared by all scorers."""

    keywords: Mapping[str, Mapping[str, tuple[str, ...]]]
    context: Mapping[str, tuple[str, ...]]
    urgency_words: tuple[str, ...]
    panic_words: tuple[str, ...]
    stress_words: tuple[str, ...]
    anger_words: tuple[str, ...]
    categories: tuple[str, ...] = EMERGENCY_CATEGORIES

    def keywords_for(self, category: str, language: str) -> tuple[str, ...]:
        """
        Keywords to match for a category in the given language.

        Non-English languages also match the English list, since speakers
        routinely code-switch. Unknown languages use English only.
        """
        by_language = self.keywords.get(category, {})
        english = by_language.get("english", ())
        if language == "english" or language not in by_language:
            return english
        return _unique(by_language[language] + english)


def build_lexicon(
    keywords: dict | None = None,
    context: dict | None = None,
    urgency_words: list | None = None,
) -> Lexicon:
    """Freeze keyword tables into a Lexicon."""
    keywords = keywords if keywords is not None else _KEYWORDS
    context = context if context is not None else _CONTEXT

    frozen_keywords = MappingProxyType(
        {
            category: MappingProxyType({lang: _unique(words) for lang, words in by_lang.items()})
            for category, by_lang in keywords.items()
        }
    )
    frozen_context = MappingProxyType({category: _unique(p) for category, p in context.items()})
    categories = tuple(c for c in EMERGENCY_CATEGORIES if c in frozen_keywords) + tuple(
        c for c in frozen_keywords if c not in EMERGENCY_CATEGORIES
    )

    return Lexicon(
        keywords=frozen_keywords,
        context=frozen_context,
        urgency_words=_unique(urgency_words if urgency_words is not None else _URGENCY_WORDS),
        panic_words=_unique(_PANIC_WORDS),
        stress_words=_unique(_STRESS_WORDS),
        anger_words=_unique(_ANGER_WORDS),
        categories=categories,
    )


DEFAULT_LEXICON = build_lexicon()
