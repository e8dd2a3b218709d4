"""Snapshot diffing and change classification.

``compare_snapshots`` decides *whether* something changed; ``classify`` and
``impact_for`` decide how bad it is. Severity policy lives in the two tables
below so it can be tuned without touching the structural rules.
"""

from collections.abc import Iterable

from citewatch.schemas.snapshot import Change, ChangeType, Severity, Snapshot

ANSWER_PREVIEW_CHARS = 100

SEVERITY_TABLE: dict[tuple[ChangeType, str], Severity] = {
    (ChangeType.CITATION_GAINED, "gained"): Severity.HIGH,
    (ChangeType.CITATION_LOST, "lost"): Severity.CRITICAL,
    (ChangeType.POSITION_CHANGED, "improved"): Severity.MEDIUM,
    (ChangeType.POSITION_CHANGED, "declined"): Severity.HIGH,
    (ChangeType.AI_ANSWER_CHANGED, "changed"): Severity.MEDIUM,
    (ChangeType.NEW_SOURCES_ADDED, "increased"): Severity.LOW,
}

IMPACT_TABLE: dict[tuple[ChangeType, str], str] = {
    (ChangeType.CITATION_GAINED, "gained"): "Positive: Your content is now being cited in AI answers",
    (ChangeType.CITATION_LOST, "lost"): "Negative: Your content is no longer being cited",
    (ChangeType.POSITION_CHANGED, "improved"): "Positive: Better citation position",
    (ChangeType.POSITION_CHANGED, "declined"): "Negative: Lower citation position",
    (ChangeType.AI_ANSWER_CHANGED, "changed"): "Monitor: AI answer content has been updated",
    (ChangeType.NEW_SOURCES_ADDED, "increased"): "Monitor: More sources are being referenced",
}


def classify(change_type: ChangeType | str, direction: str) -> Severity:
    """Look up the severity for a change type moving in ``direction``."""
    key = (ChangeType(change_type), direction)
    try:
        return SEVERITY_TABLE[key]
    except KeyError:
        raise ValueError(f"No severity defined for {key[0].value}/{direction}") from None


def impact_for(change_type: ChangeType | str, direction: str) -> str:
    return IMPACT_TABLE[(ChangeType(change_type), direction)]


def _change(
    change_type: ChangeType,
    direction: str,
    old_value,
    new_value,
    description: str,
    engine: str,
) -> Change:
    return Change(
        type=change_type,
        severity=classify(change_type, direction),
        old_value=old_value,
        new_value=new_value,
        description=description,
        impact=impact_for(change_type, direction),
        engine=engine,
    )


def compare_snapshots(
    old: Snapshot,
    new: Snapshot,
    tracked_types: Iterable[ChangeType | str],
) -> list[Change]:
    """Return the tracked changes between two snapshots of the same monitor."""
    tracked = {ChangeType(t) for t in tracked_types}
    if not tracked or old.checksum == new.checksum:
        return []

    changes: list[Change] = []
    engine = new.engine

    if not old.is_cited and new.is_cited:
        if ChangeType.CITATION_GAINED in tracked:
            changes.append(
                _change(
                    ChangeType.CITATION_GAINED,
                    "gained",
                    None,
                    new.citation_position,
                    f"Gained citation at position #{new.citation_position}",
                    engine,
                )
            )
    elif old.is_cited and not new.is_cited:
        if ChangeType.CITATION_LOST in tracked:
            changes.append(
                _change(
                    ChangeType.CITATION_LOST,
                    "lost",
                    old.citation_position,
                    None,
                    f"Lost citation (was at position #{old.citation_position})",
                    engine,
                )
            )
    elif (
        ChangeType.POSITION_CHANGED in tracked
        and old.is_cited
        and old.citation_position != new.citation_position
    ):
        direction = "improved" if new.citation_position < old.citation_position else "declined"
        changes.append(
            _change(
                ChangeType.POSITION_CHANGED,
                direction,
                old.citation_position,
                new.citation_position,
                f"Citation position changed from #{old.citation_position} "
                f"to #{new.citation_position}",
                engine,
            )
        )

    if ChangeType.AI_ANSWER_CHANGED in tracked and old.ai_answer != new.ai_answer:
        delta = len(new.ai_answer) - len(old.ai_answer)
        changes.append(
            _change(
                ChangeType.AI_ANSWER_CHANGED,
                "changed",
                old.ai_answer[:ANSWER_PREVIEW_CHARS],
                new.ai_answer[:ANSWER_PREVIEW_CHARS],
                f"AI answer content changed ({delta:+d} chars)",
                engine,
            )
        )

    # TODO: model a drop in source count once it has an agreed severity.
    if ChangeType.NEW_SOURCES_ADDED in tracked and new.total_sources > old.total_sources:
        added = new.total_sources - old.total_sources
        changes.append(
            _change(
                ChangeType.NEW_SOURCES_ADDED,
                "increased",
                old.total_sources,
                new.total_sources,
                f"{added} new sources added to AI answer",
                engine,
            )
        )

    return changes
