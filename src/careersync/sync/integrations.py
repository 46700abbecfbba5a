"""Display metadata for external tool sources."""
from typing import Dict, List, Mapping, NamedTuple

from careersync.models.sync import SyncIntegration


class IntegrationMeta(NamedTuple):
    id: str
    name: str
    icon: str
    item_label: str


INTEGRATION_META: List[IntegrationMeta] = [
    IntegrationMeta("github", "GitHub", "github", "commits & PRs"),
    IntegrationMeta("jira", "Jira", "jira", "tickets"),
    IntegrationMeta("confluence", "Confluence", "confluence", "docs"),
    IntegrationMeta("slack", "Slack", "slack", "threads"),
    IntegrationMeta("figma", "Figma", "figma", "designs"),
    IntegrationMeta("google", "Google Workspace", "google", "meetings"),
    IntegrationMeta("outlook", "Outlook", "outlook", "emails"),
]

_META_BY_ID: Dict[str, IntegrationMeta] = {m.id: m for m in INTEGRATION_META}


def build_integrations(activities_by_source: Mapping[str, int]) -> List[SyncIntegration]:
    """One `done` row per source that imported at least one item.

    Known sources come first in their fixed display order; anything the
    backend reports that we have no metadata for follows, alphabetically.
    """
    known = [m for m in INTEGRATION_META if activities_by_source.get(m.id, 0) > 0]
    unknown = sorted(
        source
        for source, count in activities_by_source.items()
        if source not in _META_BY_ID and count > 0
    )
    metas = known + [
        IntegrationMeta(source, source.replace("_", " ").title(), "generic", "items")
        for source in unknown
    ]
    return [
        SyncIntegration(
            id=meta.id,
            name=meta.name,
            icon=meta.icon,
            status="done",
            item_count=activities_by_source[meta.id],
            item_label=meta.item_label,
        )
        for meta in metas
    ]
