from __future__ import annotations

"""Static track alias table.

Maps the authoritative (form feed) spelling of each venue to the spellings
other providers use, and back. Surface-specific venues, where one physical
track races under a different name on its synthetic surface, are modelled as
explicit ``SurfaceVariant`` entries rather than left to string matching.

The table fails open: unknown names pass through unchanged.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from pydantic import ValidationError

from .errors import ConfigurationError
from .models import StateTracks, SurfaceVariant, TrackEntry, TrackIdentity, TrackRegistry
from .normalise import lookup_key, normalize_track_name

logger = logging.getLogger(__name__)

STATE_TIMEZONES: Dict[str, str] = {
    "NSW": "Australia/Sydney",
    "ACT": "Australia/Sydney",
    "VIC": "Australia/Melbourne",
    "TAS": "Australia/Hobart",
    "QLD": "Australia/Brisbane",
    "SA": "Australia/Adelaide",
    "NT": "Australia/Darwin",
    "WA": "Australia/Perth",
    "NZ": "Pacific/Auckland",
}


def _t(canonical: str, *aliases: str, variants: Optional[List[str]] = None, ratings: Optional[str] = None,
       surface: Optional[SurfaceVariant] = None) -> TrackEntry:
    return TrackEntry(
        canonical=canonical,
        code=normalize_track_name(canonical).upper().replace(" ", "_") or canonical.upper(),
        aliases=list(aliases),
        variants=variants or [],
        ratings_name=ratings,
        surface=surface,
    )


def _plain(*names: str) -> List[TrackEntry]:
    return [_t(n) for n in names]


def build_default_registry() -> TrackRegistry:
    return TrackRegistry(
        version="0.3.0",
        states={
            "NSW": StateTracks(tracks=[
                _t("Randwick", "Royal Randwick", "Kensington"),
                _t("Rosehill Gardens", "Rosehill", ratings="Rosehill"),
                _t("Canterbury Park", "Canterbury", ratings="Canterbury"),
                _t("Warwick Farm"),
                _t(
                    "Newcastle",
                    "Beaumont",
                    variants=["Newcastle", "Beaumont"],
                    surface=SurfaceVariant(turf_name="Newcastle", synthetic_name="Beaumont", location="Newcastle, NSW"),
                ),
                _t("Wagga", "Wagga Wagga", "Wagga Riverside", "MTC Wagga"),
                *_plain(
                    "Gosford", "Wyong", "Hawkesbury", "Kembla Grange", "Nowra", "Goulburn", "Albury",
                    "Moree", "Tamworth", "Armidale", "Port Macquarie", "Taree", "Scone", "Muswellbrook",
                    "Dubbo", "Orange", "Bathurst", "Grafton", "Lismore", "Casino", "Ballina",
                    "Coffs Harbour", "Gilgandra", "Inverell", "Glen Innes", "Quirindi", "Mudgee",
                    "Parkes", "Forbes", "Coonamble", "Coonabarabran", "Narromine", "Wellington",
                    "Cowra", "Young", "Cootamundra", "Junee", "Narrandera", "Griffith", "Leeton",
                    "Hay", "Deniliquin", "Corowa",
                ),
            ]),
            "ACT": StateTracks(tracks=_plain("Canberra")),
            "VIC": StateTracks(tracks=[
                _t("Flemington"),
                _t("Caulfield", "Caulfield Heath"),
                _t("Moonee Valley", "The Valley", variants=["Moonee Valley", "The Valley"]),
                _t(
                    "Sandown Hillside",
                    "Sandown",
                    variants=["Sandown Hillside", "Sandown Lakeside"],
                    ratings="Sandown",
                ),
                _t("Sandown Lakeside", ratings="Sandown"),
                _t("Yarra Valley", "Yarra Glen"),
                *_plain(
                    "Mornington", "Geelong", "Ballarat", "Bendigo", "Hamilton", "Horsham", "Sale",
                    "Pakenham", "Cranbourne", "Werribee", "Kyneton", "Kilmore", "Wodonga",
                    "Wangaratta", "Benalla", "Mansfield", "Seymour", "Swan Hill", "Mildura", "Echuca",
                    "Yarrawonga", "Shepparton", "Warrnambool",
                ),
            ]),
            "QLD": StateTracks(tracks=_plain(
                "Eagle Farm", "Doomben", "Gold Coast", "Sunshine Coast", "Ipswich", "Toowoomba",
                "Rockhampton", "Townsville", "Cairns", "Mackay", "Bundaberg",
            )),
            "SA": StateTracks(tracks=[
                _t("Murray Bridge", "Murray Bridge GH"),
                *_plain("Morphettville", "Gawler", "Strathalbyn", "Port Lincoln", "Bordertown"),
            ]),
            "WA": StateTracks(tracks=[
                _t("Ascot"),
                _t("Belmont Park", "Belmont", ratings="Belmont"),
                *_plain("Bunbury", "Albany", "Geraldton", "Kalgoorlie", "Northam", "Pinjarra"),
            ]),
            "TAS": StateTracks(tracks=[
                _t("Launceston", "Mowbray"),
                _t("Hobart", "Elwick"),
                _t("Devonport"),
            ]),
            "NT": StateTracks(tracks=[
                _t("Darwin", "Fannie Bay"),
                _t("Alice Springs", "Pioneer Park"),
            ]),
            "NZ": StateTracks(country="NZ", tracks=[
                _t("Riccarton", "Riccarton Park"),
                _t("Wanganui", "Whanganui"),
                *_plain(
                    "Te Rapa", "Ellerslie", "Trentham", "Awapuni", "Hastings", "New Plymouth",
                    "Woodville", "Avondale", "Rotorua", "Ruakaka", "Matamata", "Pukekohe", "Otaki",
                    "Tauranga", "Te Aroha", "Ashburton", "Timaru", "Oamaru", "Waimate", "Gore",
                    "Invercargill", "Riverton", "Reefton", "Greymouth", "Wingatui", "Kurow",
                ),
            ]),
        },
    )


def surface_kind(hint: Optional[str]) -> Optional[str]:
    if not hint:
        return None
    h = hint.lower()
    if "synthetic" in h or "poly" in h:
        return "synthetic"
    if "turf" in h or "grass" in h:
        return "turf"
    return None


@dataclass
class AliasTable:
    """Bidirectional canonical <-> variant structure keyed by normalised name."""

    identities: List[TrackIdentity]
    index: Dict[str, int] = field(default_factory=dict)
    variants: Dict[str, List[str]] = field(default_factory=dict)
    ratings_names: Dict[str, str] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.identities)

    def __contains__(self, name: str) -> bool:
        return self.identity_for(name) is not None

    def identity_for(self, name: Optional[str]) -> Optional[TrackIdentity]:
        if not name:
            return None
        for key in (lookup_key(name), normalize_track_name(name)):
            if key and key in self.index:
                return self.identities[self.index[key]]
        return None

    def variant_to_canonical(self, name: Optional[str]) -> Optional[str]:
        identity = self.identity_for(name)
        return identity.canonical if identity else None

    def canonical_to_variants(self, name: str, surface_hint: Optional[str] = None) -> List[str]:
        """Ordered provider spellings for ``name``.

        With a surface hint the matching surface name comes first, e.g.
        ("Newcastle", "synthetic") -> ["Beaumont", "Newcastle"].
        """
        if not name:
            return []
        identity = self.identity_for(name)
        if identity is None:
            return [name]
        names = list(self.variants.get(identity.canonical) or [identity.canonical])
        kind = surface_kind(surface_hint)
        if kind and identity.surface:
            first, second = identity.surface.turf_name, identity.surface.synthetic_name
            if kind == "synthetic":
                first, second = second, first
            names = [first, second] + [n for n in names if n not in (first, second)]
        return names

    def ratings_name(self, name: str) -> str:
        identity = self.identity_for(name)
        if identity is None:
            return name
        return self.ratings_names.get(identity.canonical, identity.canonical)

    def surface_name(self, name: str, surface: Optional[str], target: str = "feed") -> Optional[str]:
        """Surface-aware name for surface-specific venues, else None.

        The ratings side always uses the turf name.
        """
        identity = self.identity_for(name)
        if identity is None or identity.surface is None:
            return None
        if target == "ratings":
            return identity.surface.turf_name
        kind = surface_kind(surface)
        if kind == "synthetic":
            return identity.surface.synthetic_name
        if kind == "turf":
            return identity.surface.turf_name
        return None

    def all_matches(self, name: str, surface_hint: Optional[str] = None) -> Dict[str, List[str]]:
        if not name:
            return {"ratings": [], "feed": []}
        if self.identity_for(name) is None:
            return {"ratings": [name], "feed": [name]}
        feed = self.canonical_to_variants(name, surface_hint)
        ratings = [self.ratings_name(name)]
        if lookup_key(name) not in {lookup_key(n) for n in feed}:
            feed = [name] + feed
        return {"ratings": ratings, "feed": feed}

    def timezone_for(self, name: str, default: Optional[str] = None) -> Optional[str]:
        identity = self.identity_for(name)
        if identity is None or identity.timezone is None:
            logger.debug("Track %r not in alias table, using default timezone %s", name, default)
            return default
        return identity.timezone

    def state_for(self, name: str) -> Optional[str]:
        identity = self.identity_for(name)
        return identity.state if identity else None

    def cache_entries(self) -> Iterator[Tuple[str, str]]:
        """(key, canonical) pairs used to seed the canonical-name cache.

        Synthetic surface names map to themselves so a "Beaumont" meeting is
        never folded into "Newcastle".
        """
        for identity in self.identities:
            if identity.surface is not None:
                synthetic = identity.surface.synthetic_name
                yield lookup_key(synthetic), synthetic
                yield normalize_track_name(synthetic), synthetic
            yield lookup_key(identity.canonical), identity.canonical
            yield normalize_track_name(identity.canonical), identity.canonical
        for identity in self.identities:
            for name in sorted(identity.aliases):
                yield lookup_key(name), identity.canonical
                yield normalize_track_name(name), identity.canonical


def build_alias_table(registry: TrackRegistry) -> AliasTable:
    identities: List[TrackIdentity] = []
    index: Dict[str, int] = {}
    variants: Dict[str, List[str]] = {}
    ratings_names: Dict[str, str] = {}
    alias_keys: List[Tuple[int, List[str]]] = []

    for state, state_tracks in registry.states.items():
        for entry in state_tracks.tracks:
            names = [entry.canonical, *entry.aliases, *entry.variants]
            if entry.ratings_name:
                names.append(entry.ratings_name)
            if entry.surface:
                names.extend([entry.surface.turf_name, entry.surface.synthetic_name])
            identity = TrackIdentity(
                canonical=entry.canonical,
                aliases=frozenset(n for n in names if n != entry.canonical),
                surface=entry.surface,
                state=state if state_tracks.country != "NZ" else None,
                country=state_tracks.country,
                timezone=STATE_TIMEZONES.get(state),
            )
            pos = len(identities)
            identities.append(identity)
            if entry.variants:
                variants[entry.canonical] = list(entry.variants)
            if entry.ratings_name:
                ratings_names[entry.canonical] = entry.ratings_name

            for key in (lookup_key(entry.canonical), normalize_track_name(entry.canonical)):
                if key:
                    index.setdefault(key, pos)
            alias_keys.append((pos, [k for n in names for k in (lookup_key(n), normalize_track_name(n))]))

    # Every canonical spelling is registered before any alias, so an alias never
    # steals another track's own name ("Sandown Lakeside").
    for pos, keys in alias_keys:
        for key in keys:
            if not key:
                continue
            existing = index.setdefault(key, pos)
            if existing != pos:
                logger.debug(
                    "Alias key %r already owned by %s, ignoring for %s",
                    key, identities[existing].canonical, identities[pos].canonical,
                )

    return AliasTable(identities=identities, index=index, variants=variants, ratings_names=ratings_names)


def load_alias_table(registry_path: Optional[Path] = None) -> AliasTable:
    """Build the alias table from a registry JSON file or the built-in default."""
    if registry_path is None:
        registry = build_default_registry()
    else:
        try:
            registry = TrackRegistry.model_validate_json(Path(registry_path).read_text())
        except FileNotFoundError:
            raise ConfigurationError(f"Track registry not found: {registry_path}")
        except ValidationError as e:
            raise ConfigurationError(f"Invalid track registry {registry_path}: {e}")

    table = build_alias_table(registry)
    if not len(table):
        raise ConfigurationError("Track registry contains no tracks")
    return table
