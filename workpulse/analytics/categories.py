"""
Context category lookup.

Maps an application identifier to one of the fixed context categories. The
table is data, not code: a CategoryMap is built from configuration and
handed to the sessionizer, so new applications never require touching
session logic.

Usage:
    from workpulse.analytics.categories import CategoryMap

    categories = CategoryMap.from_config({"development": ["zed"]})
    categories.lookup("Zed.app")  # ContextCategory.DEVELOPMENT
"""

from __future__ import annotations

from typing import Iterable, Mapping

from workpulse.analytics.models import ContextCategory


DEFAULT_CATEGORIES: dict[ContextCategory, tuple[str, ...]] = {
    ContextCategory.COMMUNICATION: (
        "slack", "teams", "discord", "zoom", "outlook", "thunderbird", "mail",
        "telegram", "signal", "whatsapp", "skype", "messages",
    ),
    ContextCategory.DEVELOPMENT: (
        "code", "vscode", "cursor", "pycharm", "idea", "intellij", "webstorm",
        "vim", "nvim", "emacs", "sublime_text", "xcode", "android studio",
        "terminal", "iterm2", "alacritty", "kitty", "wezterm", "windowsterminal",
        "postman", "docker desktop", "dbeaver",
    ),
    ContextCategory.DOCUMENTATION: (
        "notion", "obsidian", "word", "winword", "pages", "libreoffice",
        "confluence", "acrobat", "preview", "evince", "typora", "onenote",
    ),
    ContextCategory.BROWSING: (
        "chrome", "google chrome", "firefox", "safari", "msedge", "edge",
        "brave", "opera", "arc", "vivaldi", "chromium",
    ),
    ContextCategory.DESIGN: (
        "figma", "sketch", "photoshop", "illustrator", "inkscape", "gimp",
        "blender", "affinity designer", "canva", "krita",
    ),
}

_SUFFIXES = (".exe", ".app")


def normalize_app_id(app_id: str) -> str:
    """Lowercase and strip platform suffixes so lookups are stable."""
    key = app_id.strip().lower()
    for suffix in _SUFFIXES:
        if key.endswith(suffix):
            key = key[: -len(suffix)]
    return key


class CategoryMap:
    """Immutable application -> category lookup; unknown apps map to OTHER."""

    def __init__(self, mapping: Mapping[str, ContextCategory], default: ContextCategory = ContextCategory.OTHER):
        self._mapping = {normalize_app_id(k): ContextCategory(v) for k, v in mapping.items()}
        self.default = default

    @classmethod
    def from_config(
        cls,
        overrides: Mapping[str, Iterable[str]] | None = None,
        include_defaults: bool = True,
    ) -> CategoryMap:
        """
        Build a lookup from {category: [app ids]} configuration.

        Overrides are applied after the defaults, so an app listed in config
        moves to the configured category.

        Raises:
            ValueError: unknown category name in overrides
        """
        mapping: dict[str, ContextCategory] = {}
        if include_defaults:
            for category, apps in DEFAULT_CATEGORIES.items():
                for app in apps:
                    mapping[app] = category

        for name, apps in (overrides or {}).items():
            category = ContextCategory(name.lower())
            for app in apps:
                mapping[app] = category

        return cls(mapping)

    def lookup(self, app_id: str) -> ContextCategory:
        return self._mapping.get(normalize_app_id(app_id), self.default)

    def __len__(self) -> int:
        return len(self._mapping)

    def __contains__(self, app_id: object) -> bool:
        return isinstance(app_id, str) and normalize_app_id(app_id) in self._mapping
