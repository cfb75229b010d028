from __future__ import annotations

from pathlib import Path

# Ad networks are expected to use the same string for filename and type.
# Exceptions in alphabetic order, filename: [type1, type2, ...]
NAMING_EXCEPTIONS: dict[str, list[str]] = {
    "adblade": ["adblade", "industrybrains"],
    "mantis": ["mantis-display", "mantis-recommend"],
    "weborama": ["weborama-display"],
}

BUILTIN_AD_TYPES = ("adsense", "doubleclick")

IGNORED_FILES = {"ads.extern.js"}


def _is_ad_implementation(name: str) -> bool:
    return name.endswith(".js") and not name.startswith("_") and name not in IGNORED_FILES


def get_ad_types(ads_dir: str | Path = "ads") -> list[str]:
    ad_types = list(BUILTIN_AD_TYPES)
    for entry in sorted(Path(ads_dir).iterdir(), key=lambda p: p.name):
        if not entry.is_file() or not _is_ad_implementation(entry.name):
            continue
        ad_type = entry.name[: -len(".js")]
        ad_types.extend(NAMING_EXCEPTIONS.get(ad_type, [ad_type]))
    return ad_types
