"""Inline rich-text rendering for Feishu text elements."""

import re
from typing import Any, Dict, List
from urllib.parse import unquote

BACKTICK_RUN_PATTERN = re.compile(r'`+')
WHITESPACE_PATTERN = re.compile(r'\s+')

# Applied innermost first
STYLE_WRAPPERS = (
    ('bold', '**', '**'),
    ('italic', '*', '*'),
    ('strikethrough', '~~', '~~'),
    ('underline', '<u>', '</u>'),
)

FALLBACK_TEXT_KEYS = ('content', 'text', 'title', 'name')


def wrap_inline_code(content: str) -> str:
    """
    Wrap content in a backtick fence longer than any backtick run inside it.

    Example:
        >>> wrap_inline_code('a`b`')
        '`` a`b` ``'
    """
    longest_run = max((len(run) for run in BACKTICK_RUN_PATTERN.findall(content)), default=0)
    fence = '`' * (longest_run + 1)
    padding = ' ' if content.startswith('`') or content.endswith('`') else ''
    return f"{fence}{padding}{content}{padding}{fence}"


def apply_text_style(content: str, style: Dict[str, Any]) -> str:
    """
    Compose inline markup for one text run.

    Wrapping order is fixed: inline code, bold, italic, strikethrough,
    underline and finally the hyperlink, whichever flags are set. Leading and
    trailing whitespace stays outside the markup.
    """
    if not content or not content.strip() or not style:
        return content

    stripped = content.strip()
    leading = content[:len(content) - len(content.lstrip())]
    trailing = content[len(content.rstrip()):]

    text = wrap_inline_code(stripped) if style.get('inline_code') else stripped
    for flag, opener, closer in STYLE_WRAPPERS:
        if style.get(flag):
            text = f"{opener}{text}{closer}"

    link = style.get('link')
    url = link.get('url') if isinstance(link, dict) else None
    if isinstance(url, str) and url:
        text = f"[{text}]({unquote(url)})"

    return f"{leading}{text}{trailing}"


def render_element(element: Any) -> str:
    """Render a single text element (text_run, mention_doc, equation)."""
    if isinstance(element, str):
        return element
    if not isinstance(element, dict):
        return ''

    text_run = element.get('text_run')
    if isinstance(text_run, dict):
        content = text_run.get('content')
        if not isinstance(content, str):
            return ''
        style = text_run.get('text_element_style') or text_run.get('style') or {}
        return apply_text_style(content, style if isinstance(style, dict) else {})

    mention = element.get('mention_doc')
    if isinstance(mention, dict):
        title = mention.get('title') or mention.get('token') or ''
        url = mention.get('url')
        if isinstance(url, str) and url:
            return f"[{title}]({unquote(url)})"
        return str(title)

    equation = element.get('equation')
    if isinstance(equation, dict):
        content = (equation.get('content') or '').strip()
        return f"${content}$" if content else ''

    return render_rich_text(element)


def render_rich_text(value: Any) -> str:
    """
    Render any text-bearing payload to inline Markdown.

    Accepts a string, a list of elements, a payload carrying an ``elements``
    list, or a record with a plain content/text/title/name string.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return ''.join(render_element(item) for item in value)
    if not isinstance(value, dict):
        return ''

    elements = value.get('elements')
    if isinstance(elements, list):
        return ''.join(render_element(item) for item in elements)

    if 'text_run' in value or 'mention_doc' in value or 'equation' in value:
        return render_element(value)

    for key in FALLBACK_TEXT_KEYS:
        candidate = value.get(key)
        if isinstance(candidate, str) and candidate.strip():
            return candidate
    return ''


def render_plain_text(value: Any) -> str:
    """Concatenate element contents without any markup (used for code)."""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return ''.join(render_plain_text(item) for item in value)
    if not isinstance(value, dict):
        return ''

    elements = value.get('elements')
    if isinstance(elements, list):
        return ''.join(render_plain_text(item) for item in elements)

    for key in ('text_run', 'equation'):
        nested = value.get(key)
        if isinstance(nested, dict) and isinstance(nested.get('content'), str):
            return nested['content']

    mention = value.get('mention_doc')
    if isinstance(mention, dict):
        return str(mention.get('title') or '')

    for key in FALLBACK_TEXT_KEYS:
        candidate = value.get(key)
        if isinstance(candidate, str) and candidate.strip():
            return candidate
    return ''


def normalize_line(text: str) -> str:
    """Collapse all whitespace, including line breaks, to single spaces."""
    if not text:
        return ''
    return WHITESPACE_PATTERN.sub(' ', text.replace('\r\n', '\n')).strip()


def escape_table_cell(text: str) -> str:
    return text.replace('\r\n', '\n').replace('|', '\\|').replace('\n', '<br>')


def join_nonempty(parts: List[str], separator: str = '\n') -> str:
    return separator.join(part for part in parts if part)


__all__ = [
    'wrap_inline_code',
    'apply_text_style',
    'render_element',
    'render_rich_text',
    'render_plain_text',
    'normalize_line',
    'escape_table_cell',
]
