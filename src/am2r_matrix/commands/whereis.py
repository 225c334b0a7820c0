"""Alias table for the ``whereis`` command."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

NOT_FOUND_REPLY = "`Item not found.`"

FAQ_REPLY = (
    "**Community Updates FaQ**: "
    "https://am2r-community-developers.github.io/DistributionCenter/faq"
)
CHANGELOG_REPLY = (
    "**Cumulative AM2R Changelog**: "
    "https://am2r-community-developers.github.io/DistributionCenter/changelog"
)

_GIF_BASE = "https://cdn.discordapp.com/attachments/509717926807601182"


@dataclass(frozen=True, slots=True)
class WhereIsAttachment:
    """Local GIF uploaded instead of the reply when attachments are enabled."""

    filename: str
    caption: str
    mime_type: str = "image/gif"


@dataclass(frozen=True, slots=True)
class WhereIsEntry:
    aliases: tuple[str, ...]
    reply: str
    attachment: WhereIsAttachment | None = None


def _gif(path: str) -> str:
    return f"{_GIF_BASE}/{path}"


WHEREIS_TABLE: tuple[WhereIsEntry, ...] = (
    # community links
    WhereIsEntry(("faq",), FAQ_REPLY),
    WhereIsEntry(("changelog",), CHANGELOG_REPLY),
    # people
    WhereIsEntry(
        ("doc", "doctorm64", "milton"),
        "`Creating games at Moon Studios!` https://www.orithegame.com/",
    ),
    WhereIsEntry(
        ("ridley", "kraid", "croc", "crocomire"),
        "`Waiting to challenge Samus in Metroid: Confrontation!` "
        "https://metroid2remake.blogspot.com/p/metroid-confrontation.html",
    ),
    WhereIsEntry(
        ("druid", "druidvorse"),
        "`Spaceboosting across SR388 on YouTube and Twitch!`",
    ),
    WhereIsEntry(("sabre320", "sabre"), "`Exploring the history of Dinosaur Planet!`"),
    WhereIsEntry(
        ("syphonzoa",),
        "`Feasting on the endless buffet of Hornoads in AM2R: The Horde!` "
        "https://github.com/Hornoads/AM2R-The-Horde-Multitroid/releases",
    ),
    WhereIsEntry(
        ("am2r", "am2r_11", "am2r 1.1"),
        "`Once on the internet, always on the internet. Let Google be your guide.`",
    ),
    # items
    WhereIsEntry(
        ("bomb", "bombs"),
        _gif("1076652269543620618/whereis_bombs.gif"),
    ),
    WhereIsEntry(
        ("spider", "spider ball", "spiderball"),
        _gif("1076652295967748217/whereis_spiderball.gif"),
        attachment=WhereIsAttachment("whereis_spiderball.gif", "Spider Ball"),
    ),
    WhereIsEntry(
        ("spring", "springball", "spring ball", "jumpball", "jump ball"),
        _gif("1076652296357822577/whereis_springball.gif"),
    ),
    WhereIsEntry(
        ("screw", "screw attack"),
        _gif("1076652272701939882/whereis_screwattack.gif"),
    ),
    WhereIsEntry(
        ("varia", "varia suit"),
        _gif("1076652297825829025/whereis_variasuit.gif"),
    ),
    WhereIsEntry(
        ("space", "spacejump", "space jump"),
        _gif("1076652294717841489/whereis_spacejump.gif"),
    ),
    WhereIsEntry(
        ("speed", "speedbooster", "speed booster"),
        _gif("1076652295556702258/whereis_speedbooster.gif"),
    ),
    WhereIsEntry(
        ("hijump", "highjump", "hi jump", "high jump"),
        _gif("1076652270965497876/whereis_highjump.gif"),
    ),
    WhereIsEntry(
        ("gravity", "gravity suit"),
        _gif("1076652270407667812/whereis_gravitysuit.gif"),
    ),
    WhereIsEntry(
        ("charge", "chargebeam", "charge beam"),
        _gif("1076652269988225095/whereis_chargebeam.gif"),
    ),
    WhereIsEntry(
        ("ice", "icebeam", "ice beam"),
        _gif("1076652271464611840/whereis_icebeam.gif"),
    ),
    WhereIsEntry(
        ("wave", "wavebeam", "wave beam"),
        _gif("1076652300002656317/whereis_wavebeam.gif"),
    ),
    WhereIsEntry(
        ("spazer", "spazerbeam", "spazer beam"),
        _gif("1076652295078555739/whereis_spazerbeam.gif"),
    ),
    WhereIsEntry(
        ("plasma", "plasmabeam", "plasma beam"),
        _gif("1076652271909228646/whereis_plasmabeam.gif"),
    ),
    WhereIsEntry(
        ("super", "supers", "super missile"),
        _gif("1076652296890490931/whereis_supermissiles.gif"),
    ),
    WhereIsEntry(
        ("pbomb", "pbombs", "powerbomb", "powerbombs", "power bomb", "power bombs"),
        _gif("1076652272324444180/whereis_powerbombs.gif"),
    ),
)


def normalize_item(text: str) -> str:
    return text.strip().lower()


def build_alias_index(entries: Iterable[WhereIsEntry]) -> Mapping[str, WhereIsEntry]:
    """Index entries by alias. The first entry to claim an alias keeps it."""
    index: dict[str, WhereIsEntry] = {}
    for entry in entries:
        for alias in entry.aliases:
            index.setdefault(normalize_item(alias), entry)
    return MappingProxyType(index)


class WhereIsTable:
    """Closed, case-insensitive alias lookup."""

    def __init__(self, entries: Iterable[WhereIsEntry] = WHEREIS_TABLE) -> None:
        self._entries = tuple(entries)
        self._index = build_alias_index(self._entries)

    @property
    def entries(self) -> tuple[WhereIsEntry, ...]:
        return self._entries

    def lookup(self, text: str) -> WhereIsEntry | None:
        key = normalize_item(text)
        if not key:
            return None
        return self._index.get(key)

    def aliases(self) -> list[str]:
        return sorted(self._index)
