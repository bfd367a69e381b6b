"""Typed models for the business registry's bulk export and change feed."""

from __future__ import annotations

import dataclasses
import datetime as dt
import typing as typ

import msgspec

DEFAULT_BASE_URL = "https://data.brreg.no/enhetsregisteret/api"
ENTITY_ID_FIELD = "organisasjonsnummer"


class Link(msgspec.Struct, frozen=True):
    """A HAL link object."""

    href: str


class ResolutionLinks(msgspec.Struct, frozen=True, kw_only=True):
    """Links from a change event to the current state of the entity."""

    enhet: Link | None = None
    underenhet: Link | None = None


class ChangeEvent(msgspec.Struct, frozen=True, kw_only=True):
    """A single entry of the change feed.

    Attributes
    ----------
    update_id : int
        Registry-assigned, monotonically increasing update identifier.
    entity_id : str
        Organisation number of the changed entity.
    changed_at : datetime.datetime
        When the change was registered.
    change_type : str, optional
        Registry change classification. Informational only; deletions are
        inferred from the resolution fetch.
    links : ResolutionLinks
        Resolution links for the unit and sub-unit variants.

    """

    update_id: int = msgspec.field(name="oppdateringsid")
    entity_id: str = msgspec.field(name=ENTITY_ID_FIELD)
    changed_at: dt.datetime = msgspec.field(name="dato")
    change_type: str | None = msgspec.field(default=None, name="endringstype")
    links: ResolutionLinks = msgspec.field(
        default_factory=ResolutionLinks, name="_links"
    )


class PageLinks(msgspec.Struct, frozen=True, kw_only=True):
    """Pagination links of a change page."""

    first: Link | None = None
    self_: Link | None = msgspec.field(default=None, name="self")
    next: Link | None = None
    last: Link | None = None


class PageInfo(msgspec.Struct, frozen=True, kw_only=True):
    """Pagination metadata of a change page."""

    size: int = 0
    total_elements: int = msgspec.field(default=0, name="totalElements")
    total_pages: int = msgspec.field(default=0, name="totalPages")
    number: int = 0


class ChangePage(msgspec.Struct, frozen=True, kw_only=True):
    """One page of the change feed.

    The registry omits ``_embedded`` entirely when a page holds no events.
    """

    embedded: dict[str, list[ChangeEvent]] = msgspec.field(
        default_factory=dict, name="_embedded"
    )
    links: PageLinks = msgspec.field(default_factory=PageLinks, name="_links")
    page: PageInfo = msgspec.field(default_factory=PageInfo)

    def events(self, list_name: str) -> list[ChangeEvent]:
        """Return the events embedded under ``list_name`` in feed order."""
        return self.embedded.get(list_name, [])

    @property
    def next_href(self) -> str | None:
        """Return the next-page link, if the registry supplied one."""
        return self.links.next.href if self.links.next is not None else None


_DEFAULT_NAMES: dict[str, tuple[str, str, str]] = {
    # tag: (name, embedded list, resolution link)
    "enheter": ("units", "oppdaterteEnheter", "enhet"),
    "underenheter": ("sub-units", "oppdaterteUnderenheter", "underenhet"),
}


@dataclasses.dataclass(frozen=True, slots=True)
class PartitionDescriptor:
    """Static description of one independently synced partition.

    Attributes
    ----------
    name
        Human-readable partition name used in logs.
    tag
        Registry path segment and object key prefix (``enheter``).
    download_url
        Bulk export endpoint returning the gzip-compressed JSON array.
    changes_url
        Change-feed endpoint.
    entity_url
        Base URL for single-entity lookups, used when a change event lacks
        a resolution link.
    embedded_key
        Name of the ``_embedded`` list holding this partition's events.
    link_name
        Preferred resolution link on change events (``enhet``).
    checkpoint_key
        Object key of the partition's checkpoint record.

    """

    name: str
    tag: str
    download_url: str
    changes_url: str
    entity_url: str
    embedded_key: str
    link_name: typ.Literal["enhet", "underenhet"]
    checkpoint_key: str

    @classmethod
    def for_tag(
        cls, tag: str, *, base_url: str = DEFAULT_BASE_URL
    ) -> PartitionDescriptor:
        """Build the descriptor for a known registry partition tag."""
        try:
            name, embedded_key, link_name = _DEFAULT_NAMES[tag]
        except KeyError:
            known = ", ".join(sorted(_DEFAULT_NAMES))
            msg = f"unknown partition tag {tag!r}; expected one of: {known}"
            raise ValueError(msg) from None
        root = base_url.rstrip("/")
        return cls(
            name=name,
            tag=tag,
            download_url=f"{root}/{tag}/lastned",
            changes_url=f"{root}/oppdateringer/{tag}",
            entity_url=f"{root}/{tag}",
            embedded_key=embedded_key,
            link_name=typ.cast("typ.Literal['enhet', 'underenhet']", link_name),
            checkpoint_key=f"state/{tag}.json",
        )

    def record_key(self, entity_id: str) -> str:
        """Return the object key for an entity of this partition."""
        return f"{self.tag}/{entity_id}"

    def resolution_url(self, event: ChangeEvent) -> str:
        """Return the URL that resolves ``event`` to the entity's current state."""
        preferred = getattr(event.links, self.link_name)
        if preferred is not None:
            return preferred.href
        fallback = event.links.underenhet or event.links.enhet
        if fallback is not None:
            return fallback.href
        return f"{self.entity_url}/{event.entity_id}"


KNOWN_TAGS: tuple[str, ...] = tuple(_DEFAULT_NAMES)


def default_partitions(
    base_url: str = DEFAULT_BASE_URL,
) -> tuple[PartitionDescriptor, ...]:
    """Return descriptors for every known partition."""
    return tuple(
        PartitionDescriptor.for_tag(tag, base_url=base_url) for tag in KNOWN_TAGS
    )
