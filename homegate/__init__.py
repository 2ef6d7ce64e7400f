"""homegate: household command interpretation and policy-gated execution."""

__all__ = [
    "lexicon",
    "intent",
    "policy",
    "layout",
    "db",
    "store",
    "local",
    "remote",
    "backend",
    "activity",
    "act",
    "household",
    "cost",
    "session",
    "errors",
    "settings",
    "cli",
]
