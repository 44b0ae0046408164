"""Extension classifier — map a file name to a language and category.

Allow-list semantics: anything not in the tables below is unclassified and
excluded from every count; there is no catch-all bucket.
"""

from __future__ import annotations

from repo_line_counter.domain.entities import LanguageCategory, LanguageDefinition

_CODE = LanguageCategory.CODE
_CONFIG = LanguageCategory.CONFIG
_DOCS = LanguageCategory.DOCS
_SCRIPT = LanguageCategory.SCRIPT


def _lang(name: str, category: LanguageCategory) -> LanguageDefinition:
    return LanguageDefinition(name=name, category=category)


# Exact file names win over extension lookup.
FILENAME_MAP: dict[str, LanguageDefinition] = {
    "Dockerfile": _lang("Dockerfile", _CONFIG),
    "Containerfile": _lang("Dockerfile", _CONFIG),
    "Makefile": _lang("Makefile", _CONFIG),
    "GNUmakefile": _lang("Makefile", _CONFIG),
    "CMakeLists.txt": _lang("CMake", _CONFIG),
    "Jenkinsfile": _lang("Groovy", _CONFIG),
    "Gemfile": _lang("Ruby", _CONFIG),
    "Rakefile": _lang("Ruby", _CODE),
}

# Keys are lower-case; lookup lower-cases the extension first.
EXTENSION_MAP: dict[str, LanguageDefinition] = {
    # JavaScript / TypeScript
    ".js": _lang("JavaScript", _CODE),
    ".jsx": _lang("JavaScript", _CODE),
    ".mjs": _lang("JavaScript", _CODE),
    ".cjs": _lang("JavaScript", _CODE),
    ".ts": _lang("TypeScript", _CODE),
    ".tsx": _lang("TypeScript", _CODE),
    # Python
    ".py": _lang("Python", _CODE),
    ".pyw": _lang("Python", _CODE),
    # JVM
    ".java": _lang("Java", _CODE),
    ".kt": _lang("Kotlin", _CODE),
    ".kts": _lang("Kotlin", _CODE),
    ".scala": _lang("Scala", _CODE),
    # C family
    ".c": _lang("C", _CODE),
    ".cpp": _lang("C++", _CODE),
    ".cc": _lang("C++", _CODE),
    ".cxx": _lang("C++", _CODE),
    ".h": _lang("C/C++ Header", _CODE),
    ".hpp": _lang("C/C++ Header", _CODE),
    ".cs": _lang("C#", _CODE),
    # Systems / other compiled
    ".go": _lang("Go", _CODE),
    ".rs": _lang("Rust", _CODE),
    ".swift": _lang("Swift", _CODE),
    ".dart": _lang("Dart", _CODE),
    # Scripting
    ".rb": _lang("Ruby", _CODE),
    ".erb": _lang("Ruby", _CODE),
    ".php": _lang("PHP", _CODE),
    ".lua": _lang("Lua", _CODE),
    ".pl": _lang("Perl", _CODE),
    ".pm": _lang("Perl", _CODE),
    ".r": _lang("R", _CODE),
    ".ex": _lang("Elixir", _CODE),
    ".exs": _lang("Elixir", _CODE),
    ".hs": _lang("Haskell", _CODE),
    ".sol": _lang("Solidity", _CODE),
    ".tex": _lang("LaTeX", _CODE),
    ".sql": _lang("SQL", _CODE),
    # Web
    ".html": _lang("HTML", _CODE),
    ".htm": _lang("HTML", _CODE),
    ".css": _lang("CSS", _CODE),
    ".scss": _lang("SCSS", _CODE),
    ".sass": _lang("Sass", _CODE),
    ".less": _lang("Less", _CODE),
    ".vue": _lang("Vue", _CODE),
    ".svelte": _lang("Svelte", _CODE),
    # Data / config
    ".json": _lang("JSON", _CONFIG),
    ".json5": _lang("JSON", _CONFIG),
    ".yml": _lang("YAML", _CONFIG),
    ".yaml": _lang("YAML", _CONFIG),
    ".xml": _lang("XML", _CONFIG),
    ".toml": _lang("TOML", _CONFIG),
    ".ini": _lang("INI", _CONFIG),
    ".env": _lang("Config", _CONFIG),
    ".dockerfile": _lang("Dockerfile", _CONFIG),
    ".gradle": _lang("Gradle", _CONFIG),
    # Shell
    ".sh": _lang("Shell", _SCRIPT),
    ".bash": _lang("Shell", _SCRIPT),
    ".zsh": _lang("Shell", _SCRIPT),
    ".bat": _lang("Batch", _SCRIPT),
    ".cmd": _lang("Batch", _SCRIPT),
    ".ps1": _lang("PowerShell", _SCRIPT),
    # Docs
    ".md": _lang("Markdown", _DOCS),
    ".markdown": _lang("Markdown", _DOCS),
    ".txt": _lang("Text", _DOCS),
    ".rst": _lang("reStructuredText", _DOCS),
}


def _extension(name: str) -> str:
    """Return the lower-cased final suffix (``.env`` for a bare dotfile), or ``""``."""
    dot = name.rfind(".")
    if dot == -1:
        return ""
    return name[dot:].lower()


def classify(file_name: str) -> LanguageDefinition | None:
    """Return the language of *file_name*, or ``None`` when unclassified."""
    base = file_name.replace("\\", "/").rsplit("/", maxsplit=1)[-1]
    if base in FILENAME_MAP:
        return FILENAME_MAP[base]
    return EXTENSION_MAP.get(_extension(base))


def language_categories() -> dict[str, str]:
    """Language label → category label, over every known definition."""
    result: dict[str, str] = {}
    for definition in (*EXTENSION_MAP.values(), *FILENAME_MAP.values()):
        result.setdefault(definition.name, definition.category.value)
    return result
