"""Fence language resolution for Feishu code blocks."""

import re
from typing import Any, Dict, Optional

# Feishu numeric language ids
CODE_LANGUAGE_IDS = {
    1: 'text',
    7: 'bash',
    12: 'css',
    24: 'html',
    28: 'json',
    30: 'javascript',
    39: 'markdown',
    60: 'shell',
    63: 'typescript',
    66: 'xml',
    67: 'yaml',
}

CODE_LANGUAGE_ALIASES = {
    'js': 'javascript',
    'ts': 'typescript',
    'yml': 'yaml',
    'sh': 'bash',
    'py': 'python',
    'md': 'markdown',
    'plain': 'text',
    'plaintext': 'text',
    'plain_text': 'text',
}

JSX_PATTERNS = (
    re.compile(r'<[A-Z][A-Za-z0-9.]*[\s/>]'),
    re.compile(r'return\s*\(\s*<'),
    re.compile(r'<>'),
)
VUE_TEMPLATE_PATTERN = re.compile(r'<template[\s>]', re.IGNORECASE)
VUE_SCRIPT_PATTERN = re.compile(r'<script[\s>]', re.IGNORECASE)


def normalize_language(value: Any) -> str:
    """Map a numeric id or a free-form language name to a fence language."""
    if isinstance(value, bool):
        return ''
    if isinstance(value, int):
        return CODE_LANGUAGE_IDS.get(value, '')
    if isinstance(value, str):
        name = value.strip().lower()
        if name.isdigit():
            return CODE_LANGUAGE_IDS.get(int(name), '')
        return CODE_LANGUAGE_ALIASES.get(name, name)
    return ''


def looks_like_jsx(content: str) -> bool:
    return any(pattern.search(content) for pattern in JSX_PATTERNS)


def looks_like_vue(content: str) -> bool:
    return bool(VUE_TEMPLATE_PATTERN.search(content) and VUE_SCRIPT_PATTERN.search(content))


def refine_language(language: str, content: str) -> str:
    """Narrow a declared language using the code body."""
    if not content:
        return language

    if language == 'javascript' and looks_like_jsx(content):
        return 'jsx'
    if language == 'typescript' and looks_like_jsx(content):
        return 'tsx'
    if language in ('html', 'text') and looks_like_vue(content):
        return 'vue'
    return language


def resolve_code_language(payload: Any, record: Optional[Dict[str, Any]] = None, content: str = '') -> str:
    """
    Resolve the fence language of a code block.

    Args:
        payload: The block's code payload
        record: The raw block record, consulted when the style has no language
        content: Code body used for refinement

    Returns:
        Fence language, or an empty string when unknown
    """
    language = ''
    if isinstance(payload, dict):
        style = payload.get('style')
        if isinstance(style, dict):
            language = normalize_language(style.get('language'))
        if not language:
            language = normalize_language(payload.get('language'))

    if not language and isinstance(record, dict):
        language = normalize_language(record.get('language'))

    return refine_language(language, content)


__all__ = [
    'CODE_LANGUAGE_IDS',
    'normalize_language',
    'refine_language',
    'resolve_code_language',
]
