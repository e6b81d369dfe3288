"""
Load order manipulation.

Every function here takes a ``LoaderConfig`` and returns a new one; the
input is never modified. Revalidating the copy keeps the invariant that
each enabled mod appears exactly once in ``modLoadOrder``.
"""

from __future__ import annotations

from typing import Any, Iterable

from metadata_schema import LoaderConfig, Profile


def unique_mod_ids(mod_ids: Iterable[str]) -> list[str]:
    """Drop repeated ids, keeping the first occurrence."""
    return list(dict.fromkeys(mod_ids))


def _replace(config: LoaderConfig, **changes: Any) -> LoaderConfig:
    data = config.model_dump()
    data.update(changes)
    return LoaderConfig.model_validate(data)


def set_enabled(config: LoaderConfig, mod_id: str, enabled: bool) -> LoaderConfig:
    if enabled:
        mods = config.enabled_mods + [mod_id]
    else:
        mods = [m for m in config.enabled_mods if m != mod_id]
    return _replace(config, enabled_mods=mods)


def move_mod(config: LoaderConfig, mod_id: str, offset: int) -> LoaderConfig:
    """Shift ``mod_id`` by ``offset`` places in the load order, clamped to
    the ends. Unknown ids leave the order unchanged."""
    order = list(config.mod_load_order)
    if mod_id not in order:
        return config
    index = order.index(mod_id)
    target = max(0, min(len(order) - 1, index + offset))
    order.insert(target, order.pop(index))
    return _replace(config, mod_load_order=order)


def purge_mod(config: LoaderConfig, mod_id: str) -> LoaderConfig:
    """Forget a deleted mod everywhere, profiles included."""
    profiles = {
        key: {
            "name": profile.name,
            "enabled_mods": [m for m in profile.enabled_mods if m != mod_id],
            "load_order": [m for m in profile.load_order if m != mod_id],
        }
        for key, profile in config.profiles.items()
    }
    return _replace(
        config,
        enabled_mods=[m for m in config.enabled_mods if m != mod_id],
        mod_load_order=[m for m in config.mod_load_order if m != mod_id],
        profiles=profiles,
    )


def sync_installed(config: LoaderConfig, installed_ids: Iterable[str]) -> LoaderConfig:
    """Append installed mods missing from the load order at its end."""
    order = list(config.mod_load_order)
    added = [m for m in unique_mod_ids(installed_ids) if m not in order]
    if not added:
        return config
    return _replace(config, mod_load_order=order + added)


def save_profile(config: LoaderConfig, key: str, name: str | None = None) -> LoaderConfig:
    """Snapshot the current enabled set and order under ``key``."""
    existing = config.profiles.get(key)
    profile = Profile(
        name=name or (existing.name if existing else key),
        enabled_mods=list(config.enabled_mods),
        load_order=list(config.mod_load_order),
    )
    profiles = {k: p.model_dump() for k, p in config.profiles.items()}
    profiles[key] = profile.model_dump()
    return _replace(config, profiles=profiles, current_profile=key)


def apply_profile(config: LoaderConfig, key: str) -> LoaderConfig:
    """Make profile ``key`` the active enabled set and order.

    Raises ``KeyError`` for an unknown profile.
    """
    profile = config.profiles[key]
    return _replace(
        config,
        enabled_mods=list(profile.enabled_mods),
        mod_load_order=list(profile.load_order),
        current_profile=key,
    )
