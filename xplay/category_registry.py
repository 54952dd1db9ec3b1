"""
Category and content-type rules used by the content tagger.

A rule matches when any keyword occurs as a substring of the lower-cased
text or any pattern finds a match. Substring matching is loose on purpose
(``ass`` also matches ``class``); the patterns catch hyphenation and
spacing variants the keywords miss. Bump REGISTRY_VERSION whenever a rule
changes so stored tags can be re-derived.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Pattern, Sequence, Tuple

REGISTRY_VERSION = "2024.1"


@dataclass(frozen=True)
class CategoryRule:
    name: str
    group: str
    keywords: Tuple[str, ...]
    patterns: Tuple[Pattern, ...] = field(default=())

    def matches(self, text: str) -> bool:
        if any(keyword in text for keyword in self.keywords):
            return True
        return any(pattern.search(text) for pattern in self.patterns)


def _rule(name: str, group: str, keywords: Sequence[str], patterns: Sequence[str]) -> CategoryRule:
    return CategoryRule(
        name=name,
        group=group,
        keywords=tuple(k.lower() for k in keywords),
        patterns=tuple(re.compile(p, re.IGNORECASE) for p in patterns),
    )


CATEGORY_RULES: List[CategoryRule] = [
    # Demographics
    _rule("teen", "demographic",
          ["teen", "teenage", "young", "18", "19", "college", "university", "freshman"],
          [r"\bteen\b", r"\byoung\b", r"\b(18|19)[- ]year[- ]old\b", r"\bcollege\b"]),
    _rule("milf", "demographic",
          ["milf", "mother", "mom", "mature", "cougar", "housewife"],
          [r"\bmilf\b", r"\bmom\b", r"\bmother\b", r"\bcougar\b", r"\bhousewife\b"]),
    _rule("stepmom", "demographic",
          ["stepmom", "step mom", "step mother", "stepmother", "step-mom", "step-mother"],
          [r"\bstep[- ]?mom\b", r"\bstep[- ]?mother\b"]),
    _rule("ebony", "demographic",
          ["ebony", "black", "african"],
          [r"\bebony\b", r"\bblack\b"]),
    _rule("asian", "demographic",
          ["asian", "japanese", "korean", "chinese", "thai", "filipina"],
          [r"\basian\b", r"\bjapanese\b", r"\bkorean\b", r"\bchinese\b", r"\bthai\b"]),
    _rule("indian", "demographic",
          ["indian", "desi", "punjabi", "bengali", "hindi"],
          [r"\bindian\b", r"\bdesi\b"]),

    # Production
    _rule("amateur", "production",
          ["amateur", "homemade", "selfie", "self shot", "home video", "personal"],
          [r"\bamateur\b", r"\bhomemade\b", r"\bself(?:ie| shot)\b", r"\bhome video\b"]),
    _rule("professional", "production",
          ["professional", "studio", "production", "high quality", "hd", "4k", "premium"],
          [r"\bprofessional\b", r"\bstudio\b", r"\bhigh quality\b", r"\bhd\b", r"\b4k\b"]),
    _rule("verified", "production",
          ["verified", "official", "original", "authentic", "star", "pornstar", "model"],
          [r"\bverified\b", r"\bofficial\b", r"\bpornstar\b", r"\bstar\b"]),

    # Acts
    _rule("anal", "act",
          ["anal", "ass", "butt", "backdoor"],
          [r"\banal\b", r"\bass\b", r"\bbutt\b", r"\bbackdoor\b"]),
    _rule("threesome", "act",
          ["threesome", "three way", "3way", "3some", "trio", "mmf", "ffm", "mfm"],
          [r"\bthreesome\b", r"\bthree[- ]way\b", r"\b3(?:way|some)\b", r"\b(?:mmf|ffm|mfm)\b"]),
    _rule("lesbian", "act",
          ["lesbian", "girl on girl", "gg", "female only", "women only"],
          [r"\blesbian\b", r"\bgirl[- ]on[- ]girl\b", r"\bgg\b"]),
    _rule("cheating", "act",
          ["cheating", "cheat", "affair", "unfaithful", "cuckold", "cuck", "boyfriend", "husband"],
          [r"\bcheating\b", r"\bcheat\b", r"\baffair\b", r"\bunfaithful\b", r"\bcuck(?:old)?\b"]),
    _rule("couples", "act",
          ["couple", "couples", "boyfriend", "girlfriend", "bf", "gf", "husband", "wife"],
          [r"\bcouple(s)?\b", r"\b(?:boy|girl)friend\b", r"\bhusband\b", r"\bwife\b"]),
    _rule("solo", "act",
          ["solo", "alone", "masturbation", "self pleasure", "touching", "dildo", "toy"],
          [r"\bsolo\b", r"\balone\b", r"\bmasturbat(?:e|ing|ion)\b", r"\bself[- ]pleasure\b",
           r"\bdildo\b", r"\btoy\b"]),
]

# Signals read from the text to classify the upload itself
CONTENT_SIGNAL_RULES: Dict[str, CategoryRule] = {
    "quickie": _rule(
        "quickie", "content_type",
        ["quick", "short", "fast", "tease", "preview", "trailer", "teaser", "clip", "snippet"],
        [r"\b(?:quick|short|fast)\b", r"\b(?:tease|teaser)\b", r"\bpreview\b", r"\btrailer\b",
         r"\bclip\b", r"\bsnippet\b"]),
    "explicit": _rule(
        "explicit", "content_type",
        ["explicit", "xxx", "hardcore", "uncensored", "uncut", "raw", "full"],
        [r"\bexplicit\b", r"\bxxx\b", r"\bhardcore\b", r"\buncensored\b", r"\buncut\b",
         r"\braw\b", r"\bfull\b"]),
}

CATEGORY_NAMES: Tuple[str, ...] = tuple(rule.name for rule in CATEGORY_RULES)
