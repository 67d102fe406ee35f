"""
Local entity extraction methods.

Two deterministic extractors that always run next to the language model:

* ``LexicalEntityExtractor`` finds capitalized noun phrases and classifies
  them as people, organizations, places or topics using grammatical cues
  ("X works at Y", "Dr. X", "based in X") and organization suffixes.
* ``PatternEntityExtractor`` finds email addresses, referenced web domains
  and a fixed list of technology terms.
"""

import re
from typing import Dict, List, Set, Tuple

from .data_models import Entity, EntityType, identity_key


_WORD = r"[A-Z][A-Za-z0-9'&\-]*"
_NAME = rf"{_WORD}(?:\s+(?:of\s+(?:the\s+)?)?{_WORD})*"


class LexicalEntityExtractor:
    """Proper-noun phrase analysis over plain text."""

    PHRASE_PATTERN = re.compile(rf"\b{_NAME}")

    # (regex, group -> entity type) cues that fix the type of the named phrases
    CUE_PATTERNS = [
        (re.compile(rf"\b(?P<person>{_NAME})\s+(?:works|worked|working|is employed)\s+(?:at|for)\s+(?P<org>{_NAME})"),
         {"person": EntityType.PERSON, "org": EntityType.ORGANIZATION}),
        (re.compile(rf"\b(?P<person>{_NAME})\s+(?:joined|founded|co-founded|leads|runs|manages)\s+(?P<org>{_NAME})"),
         {"person": EntityType.PERSON, "org": EntityType.ORGANIZATION}),
        (re.compile(rf"\b(?P<person>{_NAME}),?\s+(?:the\s+)?(?:CEO|CTO|CFO|founder|co-founder|president|director|head|engineer|manager)\s+(?:of|at)\s+(?P<org>{_NAME})"),
         {"person": EntityType.PERSON, "org": EntityType.ORGANIZATION}),
        (re.compile(rf"\b(?:Mr|Mrs|Ms|Dr|Prof|Sir)\.?\s+(?P<person>{_NAME})"),
         {"person": EntityType.PERSON}),
        (re.compile(rf"\b(?P<person>{_NAME})\s+(?:said|says|explained|wrote|told)\b"),
         {"person": EntityType.PERSON}),
        (re.compile(rf"\b(?:based|located|headquartered|born|lives)\s+in\s+(?P<place>{_NAME})"),
         {"place": EntityType.LOCATION}),
        (re.compile(rf"\b(?:in|near|across)\s+(?P<place>{_NAME})"),
         {"place": EntityType.LOCATION}),
    ]

    ORGANIZATION_WORDS = {
        "inc", "corp", "corporation", "ltd", "llc", "plc", "gmbh", "company",
        "co", "group", "university", "college", "institute", "foundation",
        "labs", "technologies", "systems", "association", "agency", "bank",
        "partners", "holdings", "ventures",
    }

    # Capitalized words that start sentences rather than names
    STOPWORDS = {
        "a", "an", "the", "this", "that", "these", "those", "it", "its", "we",
        "our", "you", "your", "he", "she", "they", "their", "i", "in", "on",
        "at", "for", "if", "when", "but", "and", "or", "as", "with", "by",
        "from", "to", "of", "mr", "mrs", "ms", "dr", "prof", "sir", "there",
        "here", "what", "who", "how", "why", "where", "all", "some", "many",
        "most", "every", "each", "after", "before", "while", "also", "however",
        "today", "yesterday", "tomorrow", "yes", "no", "not",
        "january", "february", "march", "april", "may", "june", "july",
        "august", "september", "october", "november", "december",
        "monday", "tuesday", "wednesday", "thursday", "friday", "saturday",
        "sunday",
    }

    TYPE_DEFAULTS = {
        EntityType.PERSON: (7, 0.8, "Person mentioned in content"),
        EntityType.ORGANIZATION: (7, 0.8, "Organization mentioned"),
        EntityType.LOCATION: (6, 0.75, "Location mentioned"),
        EntityType.CONCEPT: (6, 0.7, "Key topic"),
    }

    @classmethod
    def extract(cls, text: str) -> List[Entity]:
        """
        Classify the capitalized phrases of a text.

        Args:
            text: Plain text

        Returns:
            One entity per distinct phrase, in order of first appearance
        """
        if not text:
            return []

        cues = cls._collect_cues(text)

        phrases: List[Tuple[str, str, bool]] = []
        named: Set[str] = set(cues)
        for match in cls.PHRASE_PATTERN.finditer(text):
            phrase = cls._trim(match.group(0))
            if not phrase:
                continue
            key = identity_key(phrase)
            start = match.start() + match.group(0).find(phrase)
            sentence_initial = " " not in phrase and cls._starts_sentence(text, start)
            if not sentence_initial:
                named.add(key)
            phrases.append((phrase, key, sentence_initial))

        entities: Dict[str, Entity] = {}
        for phrase, key, sentence_initial in phrases:
            if key in entities:
                continue
            # a lone capitalized word opening a sentence needs other evidence of being a name
            if sentence_initial and key not in named:
                continue

            entity_type = cues.get(key) or cls._classify(phrase)
            importance, confidence, label = cls.TYPE_DEFAULTS[entity_type]
            entities[key] = Entity(
                text=phrase,
                type=entity_type,
                importance=importance,
                description=f"{label}: {phrase}",
                confidence=confidence,
                source="nlp",
            )

        return list(entities.values())

    @classmethod
    def _collect_cues(cls, text: str) -> Dict[str, EntityType]:
        """Phrase key -> type for phrases appearing in a grammatical cue; earlier cues win."""
        cues: Dict[str, EntityType] = {}
        for pattern, groups in cls.CUE_PATTERNS:
            for match in pattern.finditer(text):
                for group, entity_type in groups.items():
                    phrase = cls._trim(match.group(group))
                    if phrase:
                        cues.setdefault(identity_key(phrase), entity_type)
        return cues

    @staticmethod
    def _starts_sentence(text: str, index: int) -> bool:
        """True when only whitespace, quotes or brackets separate ``index`` from a sentence end."""
        position = index - 1
        while position >= 0 and (text[position].isspace() or text[position] in "\"'([“‘"):
            position -= 1
        return position < 0 or text[position] in ".!?"

    @classmethod
    def _trim(cls, phrase: str) -> str:
        """Drop leading stopwords; reject phrases that are only stopwords or too short."""
        words = phrase.split()
        while words and words[0].lower() in cls.STOPWORDS:
            words.pop(0)
        while words and words[-1].lower() in ("of", "the"):
            words.pop()
        trimmed = " ".join(words)
        if trimmed.endswith("'s"):
            trimmed = trimmed[:-2]
        if len(trimmed) < 2:
            return ""
        return trimmed

    @classmethod
    def _classify(cls, phrase: str) -> EntityType:
        words = {w.lower().rstrip(".") for w in phrase.split()}
        if words & cls.ORGANIZATION_WORDS:
            return EntityType.ORGANIZATION
        return EntityType.CONCEPT


class PatternEntityExtractor:
    """Regular-expression extraction of contacts, web domains and technologies."""

    EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
    URL_PATTERN = re.compile(r"https?://[^\s<>\"]+")
    DOMAIN_PATTERN = re.compile(r"https?://([^/\s?#]+)")

    TECH_TERMS = [
        "API", "REST", "GraphQL", "JavaScript", "Python", "React", "Vue",
        "Angular", "Node.js", "MongoDB", "PostgreSQL", "Redis", "Docker",
        "Kubernetes",
    ]

    @classmethod
    def extract(cls, text: str) -> List[Entity]:
        """Run all patterns over the text."""
        if not text:
            return []

        entities: List[Entity] = []
        seen: Set[str] = set()

        def add(entity: Entity) -> None:
            if entity.key not in seen:
                seen.add(entity.key)
                entities.append(entity)

        for email in cls.EMAIL_PATTERN.findall(text):
            add(Entity(
                text=email,
                type=EntityType.OTHER,
                importance=5,
                description=f"Contact email: {email}",
                confidence=1.0,
                source="pattern",
            ))

        for url in cls.URL_PATTERN.findall(text):
            url = url.rstrip(".,;:!?)")
            domain_match = cls.DOMAIN_PATTERN.match(url)
            if not domain_match:
                continue
            domain = domain_match.group(1)
            add(Entity(
                text=domain,
                type=EntityType.ORGANIZATION,
                importance=5,
                description=f"Referenced website: {domain}",
                aliases=[url],
                confidence=0.9,
                source="pattern",
            ))

        for term in cls.TECH_TERMS:
            if re.search(rf"(?<!\w){re.escape(term)}(?!\w)", text, re.IGNORECASE):
                add(Entity(
                    text=term,
                    type=EntityType.TECHNOLOGY,
                    importance=6,
                    description=f"Technology mentioned: {term}",
                    confidence=0.8,
                    source="pattern",
                ))

        return entities
