"""
Result aggregation.

Keeps the outcomes of the current query sequence and rebuilds the full,
priority-ordered section list every time one arrives. Display order depends
only on the configured provider order, never on arrival order.
"""

import logging
from typing import Dict, List, Sequence, Tuple

from .errors import KIND_MESSAGES
from .models import (
    DisplayRow,
    DisplaySection,
    Notice,
    OutcomeState,
    ProviderOutcome,
    RequestSource,
    SectionKind,
    SourceKind,
    source_label,
)

logger = logging.getLogger(__name__)

SECTION_TITLES = {
    SectionKind.EXPLANATION: "Explanation",
    SectionKind.FORMS: "Forms and Tenses",
    SectionKind.WEB_TRANSLATION: "Web Translation",
    SectionKind.WEB_PHRASE: "Web Phrase",
}


def _dictionary_sections(outcome: ProviderOutcome) -> List[DisplaySection]:
    entry = outcome.payload.entry
    label = source_label(outcome.source)
    sections: List[DisplaySection] = []

    def add(kind: SectionKind, rows: List[DisplayRow], title: str = "") -> None:
        if rows:
            sections.append(DisplaySection(kind, outcome.provider, title or SECTION_TITLES[kind], tuple(rows)))

    details = []
    if entry.us_phonetic or entry.uk_phonetic:
        if entry.us_phonetic:
            details.append(f"US [{entry.us_phonetic}]")
        if entry.uk_phonetic:
            details.append(f"UK [{entry.uk_phonetic}]")
    elif entry.phonetic:
        details.append(f"[{entry.phonetic}]")
    details.extend(entry.exam_types)
    if details:
        add(SectionKind.DICTIONARY_ENTRY, [DisplayRow(entry.headword, "  ".join(details))], label)

    add(SectionKind.TRANSLATION, [DisplayRow(text) for text in outcome.payload.translations], label)
    add(SectionKind.EXPLANATION, [DisplayRow(text) for text in entry.explanations])
    add(SectionKind.FORMS, [DisplayRow(value, name) for name, value in entry.forms])
    if entry.web_translation:
        key, values = entry.web_translation
        add(SectionKind.WEB_TRANSLATION, [DisplayRow("; ".join(values), key)])
    add(SectionKind.WEB_PHRASE, [DisplayRow(key, "; ".join(values)) for key, values in entry.web_phrases])
    return sections


def build_sections(outcome: ProviderOutcome) -> List[DisplaySection]:
    """Sections contributed by one successful outcome."""
    if outcome.state != OutcomeState.SUCCESS or outcome.payload is None:
        return []
    if outcome.source.kind == SourceKind.DICTIONARY and outcome.payload.entry is not None:
        return _dictionary_sections(outcome)
    rows = tuple(DisplayRow(text) for text in outcome.payload.translations if text)
    if not rows:
        return []
    return [DisplaySection(SectionKind.TRANSLATION, outcome.provider, source_label(outcome.source), rows)]


class ResultAggregator:
    """Section list for the current query sequence."""

    def __init__(self, sources: Sequence[RequestSource], show_notices: bool = True):
        # Dictionary providers first, then translation providers, each in configured order
        dictionaries = [source for source in sources if source.kind == SourceKind.DICTIONARY]
        translators = [source for source in sources if source.kind != SourceKind.DICTIONARY]
        self.priority: Dict[str, int] = {
            source.name: index for index, source in enumerate(dictionaries + translators)
        }
        self.show_notices = show_notices
        self.sequence = 0
        self.sections: Tuple[DisplaySection, ...] = ()
        self.notices: Tuple[Notice, ...] = ()
        self._outcomes: Dict[str, ProviderOutcome] = {}

    def reset(self, sequence: int) -> None:
        """Start collecting for a newer query sequence."""
        if sequence <= self.sequence:
            raise ValueError(f"Sequence must increase (current {self.sequence}, got {sequence})")
        self.sequence = sequence
        self._outcomes = {}
        self.sections = ()
        self.notices = ()

    def on_outcome(self, outcome: ProviderOutcome) -> bool:
        """Accept an outcome of the current sequence; returns True when sections were republished."""
        if outcome.sequence != self.sequence:
            logger.debug(
                "Dropping stale %s outcome for #%d (current #%d)", outcome.provider, outcome.sequence, self.sequence
            )
            return False
        if not outcome.is_terminal:
            return False
        if outcome.provider in self._outcomes:
            return False

        self._outcomes[outcome.provider] = outcome
        self._rebuild()
        return True

    @property
    def outcomes(self) -> Dict[str, ProviderOutcome]:
        return dict(self._outcomes)

    def _rank(self, provider: str) -> Tuple[int, str]:
        return self.priority.get(provider, len(self.priority)), provider

    def _rebuild(self) -> None:
        ordered = sorted(self._outcomes.values(), key=lambda outcome: self._rank(outcome.provider))

        sections: List[DisplaySection] = []
        notices: List[Notice] = []
        for outcome in ordered:
            if outcome.state == OutcomeState.SUCCESS:
                sections.extend(build_sections(outcome))
            elif self.show_notices:
                notices.append(
                    Notice(
                        provider=outcome.provider,
                        error_kind=outcome.error_kind,
                        message=outcome.message or KIND_MESSAGES[outcome.error_kind],
                    )
                )
        self.sections = tuple(sections)
        self.notices = tuple(notices)
